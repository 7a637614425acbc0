import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from chat_service.schemas.common import to_utc_iso
from chat_service.schemas.conversations import ConversationOut
from chat_service.schemas.groups import GroupOut
from chat_service.schemas.messages import MessageOut, ReactionOut


class EventType(str, Enum):
    CONNECTED = "connected"
    NEW_MESSAGE = "new_message"
    CONVERSATION_UPDATED = "conversation_updated"
    MESSAGES_READ = "messages_read"
    MESSAGE_DELETED = "message_deleted"
    REACTION_ADDED = "reaction_added"
    REACTION_REMOVED = "reaction_removed"
    PROFILE_UPDATED = "profile_updated"
    GROUP_UPDATED = "group_updated"
    NEW_CONVERSATION = "new_conversation"


class PushEvent(BaseModel):
    """A frame on the push channel: {"type": ..., "payload": {...}}."""

    type: EventType
    payload: Dict[str, Any] = {}

    def frame(self) -> str:
        return json.dumps({"type": self.type.value, "payload": self.payload})


def _drop_none(payload: dict) -> dict:
    return {k: v for k, v in payload.items() if v is not None}


def connected(user_id: str) -> PushEvent:
    return PushEvent(type=EventType.CONNECTED, payload={"userId": user_id})


def new_message(message: MessageOut) -> PushEvent:
    return PushEvent(type=EventType.NEW_MESSAGE, payload=message.wire())


def conversation_updated(
    conversation_id: str,
    snippet: Optional[str],
    is_photo: bool,
    last_message_at: Optional[datetime],
) -> PushEvent:
    return PushEvent(
        type=EventType.CONVERSATION_UPDATED,
        payload=_drop_none({
            "conversationId": conversation_id,
            "lastMessageSnippet": snippet,
            "lastMessageIsPhoto": is_photo,
            "lastMessageAt": to_utc_iso(last_message_at) if last_message_at else None,
        }),
    )


def messages_read(conversation_id: str, reader_id: str, message_ids: List[str]) -> PushEvent:
    return PushEvent(
        type=EventType.MESSAGES_READ,
        payload={
            "conversationId": conversation_id,
            "readByUserId": reader_id,
            "fullyReadMessageIds": list(message_ids),
        },
    )


def message_deleted(conversation_id: str, message_id: str) -> PushEvent:
    return PushEvent(
        type=EventType.MESSAGE_DELETED,
        payload={"conversationId": conversation_id, "messageId": message_id},
    )


def reaction_added(conversation_id: str, message_id: str, reaction: ReactionOut) -> PushEvent:
    return PushEvent(
        type=EventType.REACTION_ADDED,
        payload={
            "conversationId": conversation_id,
            "messageId": message_id,
            "reaction": reaction.wire(),
        },
    )


def reaction_removed(
    conversation_id: str, message_id: str, reaction_id: str, user_id: str
) -> PushEvent:
    return PushEvent(
        type=EventType.REACTION_REMOVED,
        payload={
            "conversationId": conversation_id,
            "messageId": message_id,
            "reactionId": reaction_id,
            "userId": user_id,
        },
    )


def profile_updated(
    user_id: str, name: Optional[str] = None, photo_url: Optional[str] = None
) -> PushEvent:
    return PushEvent(
        type=EventType.PROFILE_UPDATED,
        payload=_drop_none({"userId": user_id, "name": name, "photoUrl": photo_url}),
    )


def group_updated(group: GroupOut) -> PushEvent:
    return PushEvent(
        type=EventType.GROUP_UPDATED,
        payload=_drop_none({"groupId": group.id, "name": group.name, "photoUrl": group.photo_url}),
    )


def new_conversation(conversation: ConversationOut) -> PushEvent:
    return PushEvent(type=EventType.NEW_CONVERSATION, payload=conversation.wire())
