from typing import List, Optional

from pydantic import Field

from chat_service.schemas.common import CamelModel


class LoginRequest(CamelModel):
    name: str = Field(min_length=3, max_length=16)


class LoginResponse(CamelModel):
    identifier: str


class UsernameUpdate(CamelModel):
    name: str = Field(min_length=3, max_length=16)


class PhotoUpdate(CamelModel):
    photo_url: str = Field(min_length=1)


class UserOut(CamelModel):
    id: str
    name: str
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


class UserList(CamelModel):
    users: List[UserOut]
