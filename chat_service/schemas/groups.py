from typing import List, Optional

from pydantic import Field, field_validator

from chat_service.schemas.common import CamelModel
from chat_service.schemas.users import UserOut


class GroupRename(CamelModel):
    name: str = Field(min_length=1, max_length=255)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name is required")
        return value


class GroupCreate(GroupRename):
    member_ids: List[str] = []


class GroupMemberAdd(CamelModel):
    user_id: str = Field(min_length=1)


class GroupOut(CamelModel):
    id: str
    name: str
    photo_url: Optional[str] = None
    created_by: Optional[str] = None
    members: List[UserOut]
