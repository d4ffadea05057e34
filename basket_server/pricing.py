"""Cart pricing.

`price_cart` is a pure function of the current lines and the current catalog.
It is called on every read and after every mutation; totals are never stored.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from .catalog import CatalogStore
from .models import Cart, CartItem, CartLine


def price_cart(lines: Iterable[CartLine], catalog: CatalogStore) -> Cart:
    items: list[CartItem] = []
    total = Decimal("0")

    for line in lines:
        product = catalog.get(line.product_id)
        # A product removed from the catalog contributes nothing.
        if product is not None:
            total += product.price * line.quantity
        items.append(CartItem(product_id=line.product_id, quantity=line.quantity, product=product))

    return Cart(items=items, total=total)
