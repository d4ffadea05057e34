"""Request-scoped shop operations.

`ShopService` ties the stores together:

    identity check -> registry / catalog change -> pricing -> publish -> return

Every handler receives the caller's identity explicitly; the service never
looks at headers. Cart handlers refuse anonymous callers with
`Unauthenticated` before touching the registry.

Ordering between the two delivery paths of a cart change: the `CartUpdated`
event is queued for subscribers *before* the handler returns its cart, but a
subscriber only reads it once the current turn yields. Across transports
(HTTP response vs WebSocket push) there is no guarantee which arrives first.
"""

from __future__ import annotations

import logging

from .bus import EventBus
from .carts import CartRegistry
from .catalog import CatalogStore
from .errors import Unauthenticated
from .events import CartUpdated, ProductAdded, ProductUpdated
from .gateway import SubscriptionGateway
from .identity import Identity, UserIdentity
from .models import Cart, CartLine, Product, ProductInput, ProductsPage, ProductUpdate
from .pricing import price_cart

logger = logging.getLogger(__name__)


class ShopService:
    def __init__(
        self,
        catalog: CatalogStore,
        registry: CartRegistry | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.catalog = catalog
        self.registry = registry if registry is not None else CartRegistry(catalog)
        self.bus = bus if bus is not None else EventBus()
        self.gateway = SubscriptionGateway(self.bus)

    # --- catalog -------------------------------------------------------------

    def products(
        self,
        category: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> ProductsPage:
        return self.catalog.page(category=category, limit=limit, offset=offset)

    def product(self, product_id: str) -> Product | None:
        return self.catalog.get(product_id)

    def categories(self) -> list[str]:
        return self.catalog.categories()

    def add_product(self, data: ProductInput) -> Product:
        product = self.catalog.add(data)
        self.bus.publish(ProductAdded(product=product))
        logger.info("[Catalog] Added product %s", product.id)
        return product

    def update_product(self, product_id: str, changes: ProductUpdate) -> Product:
        product = self.catalog.update(product_id, changes)
        self.bus.publish(ProductUpdated(product=product))
        return product

    def remove_product(self, product_id: str) -> Product:
        # Carts keep their lines; pricing treats them as worth nothing.
        product = self.catalog.remove(product_id)
        logger.info("[Catalog] Removed product %s", product_id)
        return product

    # --- carts ---------------------------------------------------------------

    @staticmethod
    def _require(identity: UserIdentity) -> str:
        if not isinstance(identity, Identity):
            raise Unauthenticated()
        return identity.user_id

    def _commit(self, user_id: str, lines: list[CartLine]) -> Cart:
        cart = price_cart(lines, self.catalog)
        self.bus.publish(CartUpdated(owner=user_id, cart=cart))
        return cart

    def cart(self, identity: UserIdentity) -> Cart:
        user_id = self._require(identity)
        return price_cart(self.registry.lines(user_id), self.catalog)

    def add_to_cart(self, identity: UserIdentity, product_id: str, quantity: int = 1) -> Cart:
        user_id = self._require(identity)
        return self._commit(user_id, self.registry.add_item(user_id, product_id, quantity))

    def update_cart_item(self, identity: UserIdentity, product_id: str, quantity: int) -> Cart:
        user_id = self._require(identity)
        had_line = any(line.product_id == product_id for line in self.registry.lines(user_id))
        lines = self.registry.set_item_quantity(user_id, product_id, quantity)
        if quantity <= 0 and not had_line:
            # Removing a line that is not there changes nothing: no event.
            return price_cart(lines, self.catalog)
        return self._commit(user_id, lines)

    def remove_from_cart(self, identity: UserIdentity, product_id: str) -> Cart:
        return self.update_cart_item(identity, product_id, 0)

    def clear_cart(self, identity: UserIdentity) -> Cart:
        user_id = self._require(identity)
        return self._commit(user_id, self.registry.clear(user_id))
