"""Errors raised by the cart and catalog services.

Each error carries a short machine-readable `code`. The GraphQL layer copies
it into `extensions.code` of the failing field so clients can tell
"not logged in" apart from "no such product" without parsing messages.
"""

from __future__ import annotations


class ShopError(Exception):
    code: str = "INTERNAL"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthenticated(ShopError):
    """Raised before touching any cart when the caller has no identity."""

    code = "UNAUTHENTICATED"

    def __init__(self, message: str = "Authorization header with a bearer token is required") -> None:
        super().__init__(message)


class ProductNotFound(ShopError):
    code = "NOT_FOUND"

    def __init__(self, product_id: str) -> None:
        super().__init__(f"Product {product_id!r} not found")
        self.product_id = product_id


class InvalidArgument(ShopError):
    code = "BAD_USER_INPUT"


class InvalidQuantity(InvalidArgument):
    def __init__(self, quantity: int) -> None:
        super().__init__(f"Quantity must be greater than zero, got {quantity}")
        self.quantity = quantity
