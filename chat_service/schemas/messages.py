from typing import List, Optional

from pydantic import Field

from chat_service.schemas.common import CamelModel, UtcDateTime
from chat_service.schemas.users import UserOut


class MessageCreate(CamelModel):
    content_type: str = "text"  # text, photo, audio, document, file
    text: Optional[str] = None
    photo_url: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    reply_to_message_id: Optional[str] = None
    # retries with the same key return the original message
    client_message_id: Optional[str] = Field(default=None, max_length=64)


class ForwardRequest(CamelModel):
    target_conversation_id: str = Field(min_length=1)


class ReactionCreate(CamelModel):
    emoji: str = Field(min_length=1, max_length=32)


class ReactionOut(CamelModel):
    id: str
    emoji: str
    user: UserOut
    created_at: UtcDateTime


class MessageOut(CamelModel):
    id: str
    conversation_id: str
    sender: UserOut
    created_at: UtcDateTime
    content_type: str
    text: Optional[str] = None
    photo_url: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    replied_to_message_id: Optional[str] = None
    status: str
    reactions: List[ReactionOut] = []
    is_forwarded: bool = False


class MessagePage(CamelModel):
    page: int
    size: int
    messages: List[MessageOut]
