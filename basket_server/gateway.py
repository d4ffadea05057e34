"""Subscription gateway: turns bus channels into per-connection event streams.

A WebSocket connection fixes its identity once, when it is established. Every
`cartUpdated` stream opened on that connection then only yields carts whose
owner equals that identity. Events for other users are skipped, not treated as
errors, and the connection stays open.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from .bus import Channel, EventBus
from .events import CartUpdated, Event, ProductAdded, ProductUpdated
from .identity import Identity, UserIdentity
from .models import Cart, Product


def should_deliver(event: Event, identity: UserIdentity) -> bool:
    """Whether a subscriber with `identity` may see `event`."""
    match event:
        case CartUpdated(owner=owner):
            return isinstance(identity, Identity) and identity.user_id == owner
        case ProductAdded() | ProductUpdated():
            return True
    return False


class SubscriptionGateway:
    def __init__(self, bus: EventBus) -> None:
        self.bus = bus

    async def cart_updates(self, identity: UserIdentity) -> AsyncIterator[Cart]:
        subscription = self.bus.subscribe(Channel.CART_UPDATED)
        try:
            async for event in subscription:
                if should_deliver(event, identity):
                    yield event.cart
        finally:
            subscription.unsubscribe()

    async def _products(self, channel: Channel) -> AsyncIterator[Product]:
        subscription = self.bus.subscribe(channel)
        try:
            async for event in subscription:
                yield event.product
        finally:
            subscription.unsubscribe()

    def product_added(self) -> AsyncIterator[Product]:
        return self._products(Channel.PRODUCT_ADDED)

    def product_updated(self) -> AsyncIterator[Product]:
        return self._products(Channel.PRODUCT_UPDATED)
