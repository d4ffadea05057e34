"""Cart sync agent: keeps a local cart snapshot in step with the server.

Two inputs change the snapshot, and both simply replace it (last write wins):
- the response of a cart mutation made through this agent
- a `cartUpdated` push on the subscription socket

Applying the same cart twice (response first, then its push) is harmless.

Connection state machine:

    DISCONNECTED --recreate(token)--> CONNECTING --ack--> CONNECTED
         ^                               |  ^                 |
         |                         failure  |                drop
         |                               v  |                 |
         +------------- (backoff sleep) <---+-----------------+

- Attempts are sequential and unbounded, with a delay of
  min(base * 2**attempt, cap) between them.
- Registered subscriptions are re-sent on every successful (re)connect.
- Every teardown bumps `generation`. The connection loop of an older
  generation notices the bump and stops; a connection it manages to open
  late is closed unused, and messages it still receives are dropped.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from .api_client import CART_FIELDS, GraphQLRequestError, ShopApiClient
from .config import GRAPHQL_WS_URL, RETRY_BASE_DELAY, RETRY_MAX_DELAY
from .models import Cart
from .transport import Connection, Connector, TransportError, open_connection

logger = logging.getLogger(__name__)

CART_UPDATED_SUBSCRIPTION = f"subscription OnCartUpdated {{ cartUpdated {{ {CART_FIELDS} }} }}"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def retry_delay(attempt: int, base: float = RETRY_BASE_DELAY, cap: float = RETRY_MAX_DELAY) -> float:
    """Seconds to wait before reconnect attempt number `attempt` (0-based)."""
    return min(base * (2**attempt), cap)


@dataclass
class _Operation:
    query: str
    on_data: Callable[[dict[str, Any]], None]


class SubscriptionHandle:
    """Returned by `CartSyncAgent.subscribe`; `unsubscribe()` is idempotent."""

    def __init__(self, agent: "CartSyncAgent", operation_id: str) -> None:
        self._agent = agent
        self.operation_id = operation_id

    @property
    def active(self) -> bool:
        return self.operation_id in self._agent._operations

    async def unsubscribe(self) -> None:
        await self._agent._unsubscribe(self.operation_id)


class CartSyncAgent:
    """Owns the subscription socket and the local cart snapshot.

    Args:
        api: HTTP client used for queries and mutations.
        connector: Opens a subscription connection; replaced by fakes in tests.
        sleep: Awaited between reconnect attempts; replaced in tests.
        on_cart_change: Called with the new snapshot every time it is replaced.
    """

    def __init__(
        self,
        api: ShopApiClient,
        *,
        ws_url: str = GRAPHQL_WS_URL,
        connector: Connector = open_connection,
        base_delay: float = RETRY_BASE_DELAY,
        max_delay: float = RETRY_MAX_DELAY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_cart_change: Callable[[Cart], None] | None = None,
    ) -> None:
        self.api = api
        self.ws_url = ws_url
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.on_cart_change = on_cart_change
        self._connector = connector
        self._sleep = sleep

        self.state = ConnectionState.DISCONNECTED
        self.generation = 0
        self.cart = Cart()

        self._token: str | None = None
        self._connection: Connection | None = None
        self._task: asyncio.Task | None = None
        self._connected = asyncio.Event()
        self._operations: dict[str, _Operation] = {}
        self._ids = itertools.count(1)
        self._cart_subscription: SubscriptionHandle | None = None

    # --- derived values ------------------------------------------------------

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def total_count(self) -> int:
        """Units across all lines."""
        return sum(item.quantity for item in self.cart.items)

    @property
    def items_count(self) -> int:
        return len(self.cart.items)

    @property
    def total_amount(self) -> str:
        return f"{self.cart.total:.2f}"

    # --- connection lifecycle ------------------------------------------------

    async def recreate(self, token: str | None) -> bool:
        """Drop the current connection and, if `token` is set, open a new one.

        Returns once the new connection is established (True), or
        immediately with False when there is no token.
        """
        await self.dispose()
        self._token = token or None
        if self._token is None:
            return False

        self.generation += 1
        self._connected = asyncio.Event()
        self._task = asyncio.create_task(self._run(self.generation, self._token))
        return await self.wait_for_connection()

    async def wait_for_connection(self) -> bool:
        """Wait until the current connection lifetime is established.

        Resolves at most once per lifetime: after a drop, a new call blocks
        until the reconnect succeeds. Returns False if the lifetime is
        disposed (logout, recreate) before that happens.
        """
        if self._task is None:
            return False
        generation = self.generation
        await self._connected.wait()
        return generation == self.generation and self.state is ConnectionState.CONNECTED

    async def dispose(self) -> None:
        """Close the connection and forget all subscriptions. Idempotent."""
        self.generation += 1
        self._operations.clear()
        self._cart_subscription = None

        task, self._task = self._task, None
        connection, self._connection = self._connection, None
        self.state = ConnectionState.DISCONNECTED

        # Wake anybody waiting on the old lifetime; they will see the new generation.
        self._connected.set()
        self._connected = asyncio.Event()

        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if connection is not None:
            await self._close_quietly(connection)

    @staticmethod
    async def _close_quietly(connection: Connection) -> None:
        try:
            await connection.close()
        except (TransportError, OSError) as e:
            logger.debug("[Agent] Error while closing connection: %s", e)

    async def _run(self, generation: int, token: str) -> None:
        try:
            await self._connect_loop(generation, token)
        except Exception:
            logger.exception("[Agent] Connection loop stopped")
        finally:
            if generation == self.generation:
                # Stopped without a dispose: waiters get False.
                self.state = ConnectionState.DISCONNECTED
                self._connection = None
                self._connected.set()

    async def _connect_loop(self, generation: int, token: str) -> None:
        params = {"Authorization": f"Bearer {token}"}
        attempt = 0

        while generation == self.generation:
            self.state = ConnectionState.CONNECTING
            try:
                connection = await self._connector(self.ws_url, params)
            except TransportError as e:
                if generation != self.generation:
                    return
                delay = retry_delay(attempt, self.base_delay, self.max_delay)
                logger.warning("[Agent] Connect failed (%s); retrying in %.1fs", e, delay)
                self.state = ConnectionState.DISCONNECTED
                attempt += 1
                await self._sleep(delay)
                continue

            if generation != self.generation:
                # Superseded while connecting.
                await self._close_quietly(connection)
                return

            self._connection = connection
            self.state = ConnectionState.CONNECTED
            attempt = 0
            self._connected.set()
            logger.info("[Agent] Connected (generation %d)", generation)

            try:
                for operation_id, operation in list(self._operations.items()):
                    await connection.subscribe(operation_id, operation.query)
                async for message in connection.messages():
                    if generation != self.generation:
                        break
                    self._dispatch(message)
            except TransportError as e:
                logger.warning("[Agent] Connection lost: %s", e)
            except Exception:
                logger.exception("[Agent] Connection failed unexpectedly")
            finally:
                if self._connection is connection:
                    self._connection = None
                if generation == self.generation:
                    # Mark the drop before the close, which may suspend.
                    self.state = ConnectionState.DISCONNECTED
                    self._connected = asyncio.Event()
                await self._close_quietly(connection)

            if generation != self.generation:
                return

            delay = retry_delay(attempt, self.base_delay, self.max_delay)
            logger.info("[Agent] Disconnected; reconnecting in %.1fs", delay)
            attempt += 1
            await self._sleep(delay)

    def _dispatch(self, message: dict[str, Any]) -> None:
        """Handle one server message. A bad message is logged and skipped."""
        try:
            self._handle(message)
        except Exception:
            logger.exception("[Agent] Could not handle message %r", message)

    def _handle(self, message: dict[str, Any]) -> None:
        operation = self._operations.get(message.get("id"))
        if operation is None:
            # Unsubscribed or disposed: never reach a stale callback.
            return

        kind = message.get("type")
        if kind == "next":
            payload = message.get("payload") or {}
            if payload.get("errors"):
                logger.warning("[Agent] Subscription errors: %s", payload["errors"])
            if payload.get("data"):
                operation.on_data(payload["data"])
        elif kind == "error":
            # An error ends the operation; it is not sent again on reconnect.
            logger.warning("[Agent] Subscription %s failed: %s", message.get("id"), message.get("payload"))
            self._operations.pop(message["id"], None)
        elif kind == "complete":
            self._operations.pop(message["id"], None)

    # --- subscriptions -------------------------------------------------------

    async def subscribe(self, query: str, on_data: Callable[[dict[str, Any]], None]) -> SubscriptionHandle:
        """Register an operation. It is (re)sent on every connect."""
        operation_id = str(next(self._ids))
        self._operations[operation_id] = _Operation(query, on_data)

        connection = self._connection
        if connection is not None and self.state is ConnectionState.CONNECTED:
            try:
                await connection.subscribe(operation_id, query)
            except TransportError as e:
                # The reconnect path will send it again.
                logger.warning("[Agent] Could not send subscribe: %s", e)
        return SubscriptionHandle(self, operation_id)

    async def _unsubscribe(self, operation_id: str) -> None:
        if self._operations.pop(operation_id, None) is None:
            return
        connection = self._connection
        if connection is not None and self.state is ConnectionState.CONNECTED:
            try:
                await connection.complete(operation_id)
            except TransportError as e:
                logger.debug("[Agent] Could not send complete: %s", e)

    async def start_cart_subscription(self) -> SubscriptionHandle:
        await self.stop_cart_subscription()

        def on_data(data: dict[str, Any]) -> None:
            cart = data.get("cartUpdated")
            if cart is not None:
                self.apply_cart(Cart.model_validate(cart))

        self._cart_subscription = await self.subscribe(CART_UPDATED_SUBSCRIPTION, on_data)
        return self._cart_subscription

    async def stop_cart_subscription(self) -> None:
        handle, self._cart_subscription = self._cart_subscription, None
        if handle is not None:
            await handle.unsubscribe()

    # --- credentials ---------------------------------------------------------

    async def login(self, token: str) -> bool:
        """Switch to `token`: new socket, fresh cart subscription."""
        self.api.set_token(token)
        connected = await self.recreate(token)
        await self.start_cart_subscription()
        return connected

    async def logout(self) -> None:
        self.api.set_token(None)
        self._token = None
        await self.dispose()
        self.apply_cart(Cart())

    # --- cart snapshot -------------------------------------------------------

    def apply_cart(self, cart: Cart) -> None:
        """Replace the whole local snapshot."""
        self.cart = cart
        if self.on_cart_change is not None:
            self.on_cart_change(cart)

    def _find(self, product_id: str):
        for item in self.cart.items:
            if item.productId == str(product_id):
                return item
        return None

    async def fetch_cart(self) -> Cart:
        try:
            cart = await self.api.load_cart()
        except (httpx.HTTPError, GraphQLRequestError) as e:
            logger.error("[Agent] Could not load cart: %s", e)
            cart = Cart()
        self.apply_cart(cart)
        return self.cart

    async def add(self, product_id: str, quantity: int = 1) -> Cart:
        self.apply_cart(await self.api.add_to_cart(str(product_id), quantity))
        return self.cart

    async def decrement(self, product_id: str) -> Cart:
        """Take one unit off; the server removes the line when it reaches 0."""
        item = self._find(product_id)
        if item is None:
            return self.cart
        self.apply_cart(await self.api.update_cart_item(item.productId, item.quantity - 1))
        return self.cart

    async def remove(self, product_id: str) -> Cart:
        self.apply_cart(await self.api.update_cart_item(str(product_id), 0))
        return self.cart

    async def clear(self) -> Cart:
        self.apply_cart(await self.api.clear_cart())
        return self.cart
