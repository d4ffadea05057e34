"""Pydantic models for basket-server.

These are the server's own domain types. The GraphQL layer (`schema.py`)
converts them into wire types; nothing outside this package sees them directly.

Money is kept as `Decimal` end to end so a cart total never picks up float
rounding noise. It is converted to a float only when written to the wire.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field, field_validator


class Rating(BaseModel):
    """Aggregated customer rating. Both values may be unknown."""

    rate: Decimal | None = None
    count: int | None = Field(default=None, ge=0)


class Product(BaseModel):
    """A catalog entry.

    Fields:
        id: Opaque, stable identifier. Numeric ids from the data file are
            turned into strings so lookups never depend on the JSON type.
        price: Current unit price. Carts are always priced with this value,
            never with the price at the time the line was added.
    """

    id: str
    title: str
    price: Decimal = Field(ge=0)
    description: str = ""
    category: str = ""
    image: str = ""
    rating: Rating = Field(default_factory=Rating)

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return str(value)


class ProductInput(BaseModel):
    """Payload for creating a product."""

    title: str
    price: Decimal = Field(ge=0)
    description: str | None = None
    category: str | None = None
    image: str | None = None
    rate: Decimal | None = None
    count: int | None = Field(default=None, ge=0)


class ProductUpdate(BaseModel):
    """Partial update of a product.

    Only fields that were explicitly set are applied (see
    `model_dump(exclude_unset=True)` in the catalog).
    """

    title: str | None = None
    price: Decimal | None = Field(default=None, ge=0)
    description: str | None = None
    category: str | None = None
    image: str | None = None
    rate: Decimal | None = None
    count: int | None = Field(default=None, ge=0)


class CartLine(BaseModel):
    """One (product, quantity) pair. A line with quantity < 1 does not exist."""

    product_id: str
    quantity: int = Field(ge=1)


class CartItem(BaseModel):
    """A cart line joined with the current catalog entry.

    `product` is None when the product was removed from the catalog after the
    line was added.
    """

    product_id: str
    quantity: int = Field(ge=1)
    product: Product | None = None


class Cart(BaseModel):
    items: list[CartItem] = Field(default_factory=list)
    total: Decimal = Decimal("0")


class ProductsPage(BaseModel):
    items: list[Product]
    total: int
    has_more: bool = False
