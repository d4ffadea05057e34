"""Per-user cart state.

`CartRegistry` is the only mutable shared state of the server: a mapping from
user id to that user's lines. It is owned by `ShopService` and lives as long as
the application object.

All methods are synchronous. The server runs on a single event loop, so a
"find the line, then change it" sequence can never interleave with another
request for the same user. Keep it that way: an `await` inside any of these
methods would break that guarantee.

Carts are created on first access. Each cart remembers when it was last
touched so `evict_idle` can drop carts of users who went away.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from .catalog import CatalogStore
from .errors import InvalidQuantity, ProductNotFound
from .models import CartLine

logger = logging.getLogger(__name__)


class CartRegistry:
    def __init__(self, catalog: CatalogStore, clock: Callable[[], float] = time.monotonic) -> None:
        self.catalog = catalog
        self._clock = clock
        # user id -> {product id -> quantity}; dict keys keep one line per product.
        self._carts: dict[str, dict[str, int]] = {}
        self._touched: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._carts)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._carts

    def _cart(self, user_id: str) -> dict[str, int]:
        cart = self._carts.get(user_id)
        if cart is None:
            cart = self._carts[user_id] = {}
        self._touched[user_id] = self._clock()
        return cart

    def _require_product(self, product_id: str) -> None:
        if product_id not in self.catalog:
            raise ProductNotFound(product_id)

    def lines(self, user_id: str) -> list[CartLine]:
        """Current lines of `user_id`, in insertion order."""
        return [CartLine(product_id=pid, quantity=qty) for pid, qty in self._cart(user_id).items()]

    def add_item(self, user_id: str, product_id: str, quantity: int) -> list[CartLine]:
        """Add `quantity` units, merging into an existing line."""
        self._require_product(product_id)
        if quantity <= 0:
            raise InvalidQuantity(quantity)

        cart = self._cart(user_id)
        cart[product_id] = cart.get(product_id, 0) + quantity
        return self.lines(user_id)

    def set_item_quantity(self, user_id: str, product_id: str, quantity: int) -> list[CartLine]:
        """Set an absolute quantity. Zero or less removes the line."""
        self._require_product(product_id)

        cart = self._cart(user_id)
        if quantity <= 0:
            cart.pop(product_id, None)
        else:
            cart[product_id] = quantity
        return self.lines(user_id)

    def remove_item(self, user_id: str, product_id: str) -> list[CartLine]:
        return self.set_item_quantity(user_id, product_id, 0)

    def clear(self, user_id: str) -> list[CartLine]:
        """Empty the cart in one step."""
        self._cart(user_id).clear()
        return []

    def evict_idle(self, max_idle_seconds: float) -> int:
        """Forget carts untouched for more than `max_idle_seconds`.

        Returns the number of carts dropped.
        """
        deadline = self._clock() - max_idle_seconds
        stale = [user_id for user_id, touched in self._touched.items() if touched < deadline]
        for user_id in stale:
            del self._carts[user_id]
            del self._touched[user_id]
        if stale:
            logger.info("[Carts] Evicted %d idle cart(s)", len(stale))
        return len(stale)
