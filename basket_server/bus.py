"""In-process publish/subscribe.

Flow:
    mutation -> EventBus.publish(event) -> one asyncio.Queue per subscriber
    -> subscriber task reads it with `async for event in subscription`

Publishing is synchronous: `publish` puts the event on every subscriber queue
before it returns, in the same turn as the mutation that produced it. Readers
see the event the next time their task runs, i.e. after the publishing code
has yielded to the loop. Per channel, events arrive in publish order; there is
no ordering between channels.

Everything here assumes a single event loop (one process, no threads).
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from .events import CartUpdated, Event, ProductAdded, ProductUpdated

logger = logging.getLogger(__name__)


class Channel(str, Enum):
    PRODUCT_ADDED = "product_added"
    PRODUCT_UPDATED = "product_updated"
    CART_UPDATED = "cart_updated"


def channel_for(event: Event) -> Channel:
    match event:
        case ProductAdded():
            return Channel.PRODUCT_ADDED
        case ProductUpdated():
            return Channel.PRODUCT_UPDATED
        case CartUpdated():
            return Channel.CART_UPDATED
    raise TypeError(f"Unknown event type: {type(event).__name__}")


# Put on a queue to wake up a reader blocked in __anext__ after unsubscribe.
_CLOSED = object()


class EventSubscription:
    """Async iterator over the events of one channel.

    `unsubscribe()` stops delivery at once: events already queued but not yet
    read are dropped. It may be called any number of times.
    """

    def __init__(self, bus: "EventBus", channel: Channel) -> None:
        self.channel = channel
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def pending(self) -> int:
        """Number of events queued and not yet read."""
        return 0 if self.closed else self._queue.qsize()

    def _deliver(self, event: Event) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    def unsubscribe(self) -> None:
        if self.closed:
            return
        logger.debug("[Bus] Unsubscribed from %s, dropping %d pending event(s)", self.channel.value, self.pending())
        self.closed = True
        self._bus._remove(self)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "EventSubscription":
        return self

    async def __anext__(self) -> Event:
        if self.closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED or self.closed:
            raise StopAsyncIteration
        return item


class EventBus:
    def __init__(self) -> None:
        self._subscribers: dict[Channel, list[EventSubscription]] = {channel: [] for channel in Channel}

    def subscriber_count(self, channel: Channel) -> int:
        return len(self._subscribers[channel])

    def subscribe(self, channel: Channel) -> EventSubscription:
        subscription = EventSubscription(self, channel)
        self._subscribers[channel].append(subscription)
        logger.debug("[Bus] New subscriber on %s (%d total)", channel.value, self.subscriber_count(channel))
        return subscription

    def _remove(self, subscription: EventSubscription) -> None:
        subscribers = self._subscribers[subscription.channel]
        if subscription in subscribers:
            subscribers.remove(subscription)

    def publish(self, event: Event) -> int:
        """Queue `event` for every current subscriber of its channel.

        Returns the number of subscribers the event was queued for.
        """
        channel = channel_for(event)
        subscribers = list(self._subscribers[channel])
        for subscription in subscribers:
            subscription._deliver(event)
        logger.debug("[Bus] Published %s to %d subscriber(s)", event.event_type, len(subscribers))
        return len(subscribers)
