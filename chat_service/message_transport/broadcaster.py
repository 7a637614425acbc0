import asyncio
import logging
from typing import Iterable, Set

from chat_service.message_transport.events import PushEvent
from chat_service.message_transport.registry import ConnectionRegistry, PushConnection

logger = logging.getLogger(__name__)


class Broadcaster:
    """
    Fans events out to the live connections of a set of users.

    notify() returns immediately: every recipient gets its own task, so a slow
    or broken socket never holds up the request or the other recipients.
    Users without a connection are skipped; they catch up by polling.
    """

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry
        self._pending: Set[asyncio.Task] = set()

    def notify(self, user_ids: Iterable[str], event: PushEvent):
        recipients = [uid for uid in dict.fromkeys(user_ids) if uid]
        try:
            frame = event.frame()
        except (TypeError, ValueError) as e:
            logger.error("[broadcaster] Could not serialize %s event: %s", event.type.value, e)
            return

        for user_id in recipients:
            connection = self.registry.get(user_id)
            if connection is None:
                continue
            task = asyncio.create_task(self._deliver(connection, event, frame))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, connection: PushConnection, event: PushEvent, frame: str):
        try:
            await connection.send(frame)
        except Exception as e:
            logger.warning(
                "[broadcaster] Delivery of %s to %s failed: %s",
                event.type.value, connection.user_id, e,
            )
            await self.registry.unregister(connection.user_id, connection)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self):
        """Wait for every delivery started so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
