import asyncio

import pytest
from unittest.mock import AsyncMock

from fastapi.websockets import WebSocketState

from chat_service.message_transport.registry import (
    EVICTED_CLOSE_CODE,
    ConnectionClosed,
    ConnectionRegistry,
    ConnectionState,
    PushConnection,
)


def fake_socket():
    ws = AsyncMock()
    ws.client_state = WebSocketState.CONNECTED
    return ws


@pytest.mark.asyncio
async def test_register_and_lookup():
    registry = ConnectionRegistry()
    conn = PushConnection("bob", fake_socket())

    evicted = await registry.register("bob", conn)

    assert evicted is None
    assert registry.get("bob") is conn
    assert "bob" in registry
    assert registry.get("alice") is None
    assert conn.state == ConnectionState.REGISTERED


@pytest.mark.asyncio
async def test_reconnect_evicts_previous_connection():
    registry = ConnectionRegistry()
    old_ws, new_ws = fake_socket(), fake_socket()
    old = PushConnection("bob", old_ws)
    new = PushConnection("bob", new_ws)

    await registry.register("bob", old)
    evicted = await registry.register("bob", new)

    assert evicted is old
    assert registry.get("bob") is new
    assert len(registry) == 1
    old_ws.close.assert_awaited_once_with(code=EVICTED_CLOSE_CODE)
    new_ws.close.assert_not_awaited()
    assert old.closed


@pytest.mark.asyncio
async def test_stale_teardown_keeps_replacement():
    registry = ConnectionRegistry()
    old = PushConnection("bob", fake_socket())
    new = PushConnection("bob", fake_socket())
    await registry.register("bob", old)
    await registry.register("bob", new)

    # the evicted socket's handler cleans up after the replacement registered
    removed = await registry.unregister("bob", old)

    assert removed is False
    assert registry.get("bob") is new


@pytest.mark.asyncio
async def test_unregister_is_idempotent():
    registry = ConnectionRegistry()
    ws = fake_socket()
    conn = PushConnection("bob", ws)
    await registry.register("bob", conn)

    assert await registry.unregister("bob") is True
    assert await registry.unregister("bob") is False
    assert await registry.unregister("bob", conn) is False
    assert registry.get("bob") is None
    ws.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_closed_connection_refuses_writes():
    ws = fake_socket()
    conn = PushConnection("bob", ws)
    await conn.close()

    with pytest.raises(ConnectionClosed):
        await conn.send('{"type": "connected", "payload": {}}')
    ws.send_text.assert_not_awaited()


@pytest.mark.asyncio
async def test_close_skips_already_disconnected_socket():
    ws = fake_socket()
    ws.client_state = WebSocketState.DISCONNECTED
    conn = PushConnection("bob", ws)

    await conn.close()

    assert conn.state == ConnectionState.CLOSED
    ws.close.assert_not_awaited()


@pytest.mark.asyncio
async def test_close_all():
    registry = ConnectionRegistry()
    sockets = [fake_socket() for _ in range(3)]
    for i, ws in enumerate(sockets):
        await registry.register(f"user{i}", PushConnection(f"user{i}", ws))

    await registry.close_all()

    assert len(registry) == 0
    for ws in sockets:
        ws.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_greeting_goes_out_before_pushes_during_slow_eviction():
    registry = ConnectionRegistry()
    release = asyncio.Event()
    old_ws = fake_socket()

    async def slow_close(code=1000):
        await release.wait()

    old_ws.close.side_effect = slow_close
    old = PushConnection("bob", old_ws)
    await registry.register("bob", old)

    written = []
    new_ws = fake_socket()
    new_ws.send_text.side_effect = written.append
    new = PushConnection("bob", new_ws)

    registering = asyncio.create_task(registry.register("bob", new, greeting="connected"))
    while not old_ws.close.await_count:
        await asyncio.sleep(0)

    # a broadcast lands while the old socket is still closing
    await registry.get("bob").send("new_message")
    assert written == ["connected", "new_message"]

    release.set()
    assert await registering is old
