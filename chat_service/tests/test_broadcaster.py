import asyncio
import json

import pytest
from unittest.mock import AsyncMock

from fastapi.websockets import WebSocketState

from chat_service.message_transport import events
from chat_service.message_transport.broadcaster import Broadcaster
from chat_service.message_transport.registry import ConnectionRegistry, PushConnection


def fake_socket():
    ws = AsyncMock()
    ws.client_state = WebSocketState.CONNECTED
    return ws


async def online(registry, user_id, ws=None):
    ws = ws or fake_socket()
    await registry.register(user_id, PushConnection(user_id, ws))
    return ws


@pytest.mark.asyncio
async def test_notify_reaches_each_online_user_once():
    registry = ConnectionRegistry()
    broadcaster = Broadcaster(registry)
    bob = await online(registry, "bob")
    carol = await online(registry, "carol")

    event = events.profile_updated("alice", name="alice2")
    broadcaster.notify(["bob", "carol", "bob", "dave"], event)
    await broadcaster.drain()

    expected = json.dumps({"type": "profile_updated", "payload": {"userId": "alice", "name": "alice2"}})
    bob.send_text.assert_awaited_once_with(expected)
    carol.send_text.assert_awaited_once_with(expected)


@pytest.mark.asyncio
async def test_failed_delivery_only_drops_that_connection():
    registry = ConnectionRegistry()
    broadcaster = Broadcaster(registry)
    broken = fake_socket()
    broken.send_text.side_effect = RuntimeError("socket gone")
    await online(registry, "bob", broken)
    carol = await online(registry, "carol")

    broadcaster.notify(["bob", "carol"], events.message_deleted("c1", "m1"))
    await broadcaster.drain()

    assert registry.get("bob") is None
    assert registry.get("carol") is not None
    carol.send_text.assert_awaited_once()


@pytest.mark.asyncio
async def test_notify_does_not_wait_for_slow_sockets():
    registry = ConnectionRegistry()
    broadcaster = Broadcaster(registry)
    release = asyncio.Event()
    slow = fake_socket()

    async def blocked_send(frame):
        await release.wait()

    slow.send_text.side_effect = blocked_send
    await online(registry, "bob", slow)

    broadcaster.notify(["bob"], events.connected("bob"))
    assert broadcaster.pending == 1

    release.set()
    await broadcaster.drain()
    assert broadcaster.pending == 0


@pytest.mark.asyncio
async def test_frames_to_one_connection_keep_order():
    registry = ConnectionRegistry()
    broadcaster = Broadcaster(registry)
    bob = await online(registry, "bob")

    for i in range(5):
        broadcaster.notify(["bob"], events.message_deleted("c1", f"m{i}"))
    await broadcaster.drain()

    sent = [json.loads(call.args[0])["payload"]["messageId"] for call in bob.send_text.await_args_list]
    assert sent == [f"m{i}" for i in range(5)]


@pytest.mark.asyncio
async def test_offline_recipients_are_skipped():
    registry = ConnectionRegistry()
    broadcaster = Broadcaster(registry)

    broadcaster.notify(["nobody"], events.connected("nobody"))

    assert broadcaster.pending == 0
    await broadcaster.drain()
