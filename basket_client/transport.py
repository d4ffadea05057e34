"""WebSocket transport for GraphQL subscriptions (graphql-transport-ws).

Handshake:
    open socket (subprotocol "graphql-transport-ws")
    -> send {"type": "connection_init", "payload": <connection params>}
    -> wait for {"type": "connection_ack"}

The connection params are where the bearer token travels: the server reads
`payload["Authorization"]` once and fixes the socket's identity with it.

After the handshake the connection:
- sends `subscribe` / `complete` messages for operation ids chosen by the
  caller
- yields every `next` / `error` / `complete` message from the server
- answers server `ping` with `pong` on its own

Any failure to open, or any abnormal end of the socket, is reported as
`TransportError`. The sync agent treats that as "reconnect", never as fatal.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Protocol

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .config import CONNECTION_ACK_TIMEOUT

logger = logging.getLogger(__name__)

GRAPHQL_TRANSPORT_WS = "graphql-transport-ws"


class TransportError(Exception):
    """The subscription socket could not be opened or died."""


class Connection(Protocol):
    async def subscribe(self, operation_id: str, query: str, variables: dict[str, Any] | None = None) -> None: ...

    async def complete(self, operation_id: str) -> None: ...

    def messages(self) -> AsyncIterator[dict[str, Any]]: ...

    async def close(self) -> None: ...


# (url, connection params) -> established connection
Connector = Callable[[str, dict[str, Any]], Awaitable[Connection]]


class GraphQLWsConnection:
    def __init__(self, websocket) -> None:
        self._ws = websocket

    async def _send(self, message: dict[str, Any]) -> None:
        try:
            await self._ws.send(json.dumps(message))
        except ConnectionClosed as e:
            raise TransportError(f"Socket closed while sending {message['type']}") from e

    async def subscribe(self, operation_id: str, query: str, variables: dict[str, Any] | None = None) -> None:
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables
        await self._send({"id": operation_id, "type": "subscribe", "payload": payload})

    async def complete(self, operation_id: str) -> None:
        await self._send({"id": operation_id, "type": "complete"})

    async def messages(self) -> AsyncIterator[dict[str, Any]]:
        """Yield server messages until the socket closes.

        A clean close ends the iteration; an abnormal one raises
        TransportError.
        """
        try:
            async for raw in self._ws:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("[Transport] Ignoring non-JSON frame")
                    continue
                if not isinstance(message, dict):
                    logger.warning("[Transport] Ignoring non-object frame")
                    continue
                kind = message.get("type")
                if kind == "ping":
                    await self._send({"type": "pong"})
                    continue
                if kind == "pong":
                    continue
                yield message
        except ConnectionClosed as e:
            raise TransportError(f"Socket closed: {e}") from e

    async def close(self) -> None:
        await self._ws.close()


async def open_connection(
    url: str,
    connection_params: dict[str, Any],
    ack_timeout: float = CONNECTION_ACK_TIMEOUT,
) -> GraphQLWsConnection:
    """Open a socket and complete the graphql-transport-ws handshake."""
    try:
        ws = await websockets.connect(url, subprotocols=[GRAPHQL_TRANSPORT_WS])
    except (OSError, WebSocketException, asyncio.TimeoutError) as e:
        raise TransportError(f"Could not connect to {url}: {e}") from e

    try:
        await ws.send(json.dumps({"type": "connection_init", "payload": connection_params}))
        raw = await asyncio.wait_for(ws.recv(), timeout=ack_timeout)
        ack = json.loads(raw)
    except (ConnectionClosed, asyncio.TimeoutError, json.JSONDecodeError) as e:
        await ws.close()
        raise TransportError(f"Handshake with {url} failed: {e!r}") from e

    if ack.get("type") != "connection_ack":
        await ws.close()
        raise TransportError(f"Expected connection_ack, got {ack.get('type')!r}")

    logger.info("[Transport] Connected to %s", url)
    return GraphQLWsConnection(ws)
