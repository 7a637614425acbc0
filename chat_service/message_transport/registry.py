"""
In-memory map of user id -> live push connection.

One connection per user: a newer connection evicts and closes the older one.
Lookups read the dict directly; register/unregister run under a single
asyncio.Lock so a reconnect and a teardown cannot interleave.
"""
import asyncio
import logging
from enum import Enum
from typing import Dict, Optional

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

logger = logging.getLogger(__name__)

# sent to a socket replaced by a newer connection of the same user
EVICTED_CLOSE_CODE = 4001
GOING_AWAY_CLOSE_CODE = 1001


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    REGISTERED = "registered"
    ACTIVE = "active"
    IDLE = "idle"
    CLOSED = "closed"


class ConnectionClosed(Exception):
    pass


class PushConnection:
    def __init__(self, user_id: str, websocket: WebSocket):
        self.user_id = user_id
        self.websocket = websocket
        self.state = ConnectionState.CONNECTING
        # frames for one socket go out one at a time
        self._write_lock = asyncio.Lock()

    @property
    def closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    async def send(self, frame: str):
        async with self._write_lock:
            await self._write(frame)

    async def _write(self, frame: str):
        # caller holds _write_lock
        if self.closed:
            raise ConnectionClosed(f"connection for {self.user_id} is closed")
        self.state = ConnectionState.ACTIVE
        try:
            await self.websocket.send_text(frame)
        finally:
            if not self.closed:
                self.state = ConnectionState.IDLE

    async def close(self, code: int = 1000):
        if self.closed:
            return
        self.state = ConnectionState.CLOSED
        if self.websocket.client_state != WebSocketState.DISCONNECTED:
            try:
                await self.websocket.close(code=code)
            except RuntimeError as e:
                # the peer went away between the state check and the close
                logger.debug("[registry] Close for %s skipped: %s", self.user_id, e)

    def __repr__(self):
        return f"<PushConnection user={self.user_id} state={self.state.value}>"


class ConnectionRegistry:
    def __init__(self):
        self._connections: Dict[str, PushConnection] = {}
        self._lock = asyncio.Lock()

    def get(self, user_id: str) -> Optional[PushConnection]:
        return self._connections.get(user_id)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    async def register(
        self, user_id: str, connection: PushConnection, greeting: Optional[str] = None
    ) -> Optional[PushConnection]:
        """
        Make `connection` the live connection for user_id.
        Returns the evicted connection, if there was one.

        `greeting` is written before any frame a broadcast may queue for the
        new connection, and before the previous one is closed.
        """
        async with connection._write_lock:
            async with self._lock:
                previous = self._connections.get(user_id)
                self._connections[user_id] = connection
                connection.state = ConnectionState.REGISTERED
            if greeting is not None:
                await connection._write(greeting)

        if previous is not None and previous is not connection:
            logger.info("[registry] User %s reconnected, closing previous connection", user_id)
            await previous.close(EVICTED_CLOSE_CODE)
            return previous
        logger.info("[registry] User %s connected (%d online)", user_id, len(self._connections))
        return None

    async def unregister(self, user_id: str, connection: Optional[PushConnection] = None) -> bool:
        """
        Remove and close the user's connection. Safe to call repeatedly.

        With `connection` given, the entry is only removed while it still
        points at that connection; a stale connection is just closed.
        """
        async with self._lock:
            current = self._connections.get(user_id)
            removed = current is not None and (connection is None or current is connection)
            if removed:
                del self._connections[user_id]

        target = connection if connection is not None else current
        if target is not None:
            await target.close()
        if removed:
            logger.info("[registry] User %s disconnected (%d online)", user_id, len(self._connections))
        return removed

    async def close_all(self):
        async with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
        for connection in connections:
            await connection.close(GOING_AWAY_CLOSE_CODE)
        logger.info("[registry] Closed %d connection(s)", len(connections))
