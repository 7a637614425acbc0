import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from chat_service.config import KEEPALIVE_TIMEOUT_SECONDS
from chat_service.dependencies import get_websocket_user
from chat_service.errors import Unauthorized
from chat_service.message_transport import events
from chat_service.message_transport.registry import ConnectionClosed, PushConnection

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def push_channel(websocket: WebSocket):
    """
    Server -> client push channel, authenticated with ?token=<identifier>.

    The server never expects commands on this socket; anything the client
    sends only counts as a keep-alive. A socket that stays silent longer than
    KEEPALIVE_TIMEOUT_SECONDS is dropped and the client falls back to polling.
    """
    try:
        user = await get_websocket_user(websocket)
    except Unauthorized as e:
        logger.info("[ws] Rejected connection: %s", e.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    user_id = user.id
    registry = websocket.app.state.registry
    connection = PushConnection(user_id, websocket)

    await websocket.accept()

    try:
        # `connected` goes out ahead of any push queued once the map points here
        await registry.register(user_id, connection, greeting=events.connected(user_id).frame())
        while True:
            try:
                message = await asyncio.wait_for(websocket.receive(), timeout=KEEPALIVE_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                logger.info("[ws] No keep-alive from %s for %ss, dropping", user_id, KEEPALIVE_TIMEOUT_SECONDS)
                break
            if message["type"] == "websocket.disconnect":
                break
    except (WebSocketDisconnect, ConnectionClosed, RuntimeError) as e:
        logger.debug("[ws] Connection for %s ended: %r", user_id, e)
    finally:
        # no-op for the map if a newer connection already replaced this one
        await registry.unregister(user_id, connection)
