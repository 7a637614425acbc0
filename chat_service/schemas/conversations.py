from typing import List, Optional

from pydantic import Field

from chat_service.schemas.common import CamelModel, UtcDateTime
from chat_service.schemas.messages import MessageOut
from chat_service.schemas.users import UserOut


class DirectConversationCreate(CamelModel):
    user_id: str = Field(min_length=1)


class ConversationSummary(CamelModel):
    id: str
    type: str
    title: str
    photo_url: Optional[str] = None
    last_message_at: Optional[UtcDateTime] = None
    last_message_snippet: Optional[str] = None
    last_message_is_photo: bool = False


class ConversationOut(CamelModel):
    id: str
    type: str
    title: str
    photo_url: Optional[str] = None
    participants: List[UserOut]
    messages: List[MessageOut] = []
