import asyncio
import json

import pytest

from basket_client import transport
from basket_client.transport import GraphQLWsConnection, TransportError, open_connection


class FakeWebSocket:
    """Scripted stand-in for a `websockets` client connection."""

    def __init__(self, incoming=()):
        self.incoming = list(incoming)
        self.sent = []
        self.closed = False

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def recv(self):
        return self.incoming.pop(0)

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        while self.incoming:
            yield self.incoming.pop(0)

    async def close(self):
        self.closed = True


def frame(**message):
    return json.dumps(message)


async def collect(connection):
    return [message async for message in connection.messages()]


async def test_subscribe_and_complete_messages():
    ws = FakeWebSocket()
    connection = GraphQLWsConnection(ws)

    await connection.subscribe("1", "subscription { cartUpdated { total } }")
    await connection.subscribe("2", "subscription S($x: Int) { a }", {"x": 1})
    await connection.complete("1")

    assert ws.sent == [
        {"id": "1", "type": "subscribe", "payload": {"query": "subscription { cartUpdated { total } }"}},
        {"id": "2", "type": "subscribe", "payload": {"query": "subscription S($x: Int) { a }", "variables": {"x": 1}}},
        {"id": "1", "type": "complete"},
    ]


async def test_ping_is_answered_and_not_yielded():
    ws = FakeWebSocket([frame(type="ping"), frame(id="1", type="next", payload={"data": {}}), frame(type="pong")])
    messages = await collect(GraphQLWsConnection(ws))

    assert messages == [{"id": "1", "type": "next", "payload": {"data": {}}}]
    assert ws.sent == [{"type": "pong"}]


async def test_non_json_frames_are_skipped():
    ws = FakeWebSocket(["garbage", frame(id="1", type="complete")])
    assert await collect(GraphQLWsConnection(ws)) == [{"id": "1", "type": "complete"}]


async def test_non_object_frames_are_skipped():
    ws = FakeWebSocket(["[1, 2]", "\"text\"", frame(id="1", type="complete")])
    assert await collect(GraphQLWsConnection(ws)) == [{"id": "1", "type": "complete"}]


async def test_handshake_sends_params_and_waits_for_ack(monkeypatch):
    ws = FakeWebSocket([frame(type="connection_ack")])
    calls = []

    async def connect(url, subprotocols):
        calls.append((url, subprotocols))
        return ws

    monkeypatch.setattr(transport.websockets, "connect", connect)
    connection = await open_connection("ws://test/graphql", {"Authorization": "Bearer t"})

    assert isinstance(connection, GraphQLWsConnection)
    assert calls == [("ws://test/graphql", ["graphql-transport-ws"])]
    assert ws.sent == [{"type": "connection_init", "payload": {"Authorization": "Bearer t"}}]
    assert not ws.closed


async def test_handshake_without_ack_closes_the_socket(monkeypatch):
    ws = FakeWebSocket([frame(type="connection_error")])

    async def connect(url, subprotocols):
        return ws

    monkeypatch.setattr(transport.websockets, "connect", connect)
    with pytest.raises(TransportError):
        await open_connection("ws://test/graphql", {})
    assert ws.closed


async def test_handshake_timeout_is_a_transport_error(monkeypatch):
    class SilentWebSocket(FakeWebSocket):
        async def recv(self):
            await asyncio.sleep(10)

    ws = SilentWebSocket()

    async def connect(url, subprotocols):
        return ws

    monkeypatch.setattr(transport.websockets, "connect", connect)
    with pytest.raises(TransportError):
        await open_connection("ws://test/graphql", {}, ack_timeout=0.01)
    assert ws.closed


async def test_unreachable_server_is_a_transport_error(monkeypatch):
    async def connect(url, subprotocols):
        raise ConnectionRefusedError("refused")

    monkeypatch.setattr(transport.websockets, "connect", connect)
    with pytest.raises(TransportError):
        await open_connection("ws://test/graphql", {})
