"""
Message status derived from per-recipient markers.

A message is `read` once every participant other than the sender has a read
marker, `received` once at least one of them has any marker, and `sent`
otherwise. Status only moves forward for a fixed participant set, but a new
group member who has not read anything can make a `read` message look
`received` again on the next recompute; the stored column is a hint only.
"""
from enum import Enum
from typing import Dict, Iterable, List, Set

from sqlalchemy.ext.asyncio import AsyncSession

from chat_service import store
from chat_service.models import Message


class MessageStatus(str, Enum):
    SENT = "sent"
    RECEIVED = "received"
    READ = "read"


def resolve_status(
    sender_id: str,
    participant_ids: Iterable[str],
    delivered_to: Iterable[str] = (),
    read_by: Iterable[str] = (),
) -> MessageStatus:
    recipients = set(participant_ids) - {sender_id}
    if not recipients:
        return MessageStatus.SENT

    readers = recipients & set(read_by)
    if len(readers) >= len(recipients):
        return MessageStatus.READ
    if readers or recipients & set(delivered_to):
        return MessageStatus.RECEIVED
    return MessageStatus.SENT


async def resolve_statuses(
    db: AsyncSession, messages: List[Message], participant_ids: Iterable[str]
) -> Dict[str, MessageStatus]:
    """Recompute status for messages of one conversation."""
    members: Set[str] = set(participant_ids)
    delivered, read = await store.get_markers(db, [m.id for m in messages])
    return {
        m.id: resolve_status(m.sender_id, members, delivered.get(m.id, ()), read.get(m.id, ()))
        for m in messages
    }


async def refresh_cached_status(db: AsyncSession, statuses: Dict[str, MessageStatus]):
    """Push freshly resolved statuses into the stored hint column."""
    for status in (MessageStatus.RECEIVED, MessageStatus.READ):
        ids = [mid for mid, s in statuses.items() if s == status]
        await store.upgrade_cached_status(db, ids, status.value)
