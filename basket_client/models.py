"""Pydantic models for basket-client.

They mirror the GraphQL wire format field for field (camelCase included), so
a `data` payload can be validated directly:

    cart = Cart.model_validate(data["addToCart"])

Fields the client does not always ask for (`description`, `rating`, ...)
have defaults, because each query selects only what its screen needs.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class Rating(BaseModel):
    rate: float | None = None
    count: int | None = None


class Product(BaseModel):
    id: str
    title: str
    price: float
    description: str | None = None
    category: str | None = None
    image: str | None = None
    rating: Rating | None = None


class CartItem(BaseModel):
    """One line of the cart.

    `product` is None when the product was removed from the catalog.
    """

    productId: str
    quantity: int = Field(ge=1)
    product: Product | None = None


class Cart(BaseModel):
    items: list[CartItem] = Field(default_factory=list)
    total: float = 0.0


class ProductsPage(BaseModel):
    items: list[Product] = Field(default_factory=list)
    total: int = 0
    hasMore: bool = False
