"""Event schemas published on the in-process event bus.

The set of events is closed: every event is one of the three models below and
carries a constant `event_type` discriminator, so it can be dispatched with a
`match` statement or validated into the right class through `Event`.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from .models import Cart, Product


class ProductAdded(BaseModel):
    event_type: Literal["ProductAdded"] = "ProductAdded"
    product: Product


class ProductUpdated(BaseModel):
    event_type: Literal["ProductUpdated"] = "ProductUpdated"
    product: Product


class CartUpdated(BaseModel):
    """A user's cart changed.

    Fields:
        owner: User id of the cart owner. Subscribers only receive the event
            when their own identity equals this value.
        cart: The priced cart right after the mutation.
    """

    event_type: Literal["CartUpdated"] = "CartUpdated"
    owner: str
    cart: Cart


Event = Annotated[
    Union[ProductAdded, ProductUpdated, CartUpdated],
    Field(discriminator="event_type"),
]
