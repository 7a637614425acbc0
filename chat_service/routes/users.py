from typing import Optional

from fastapi import APIRouter, Depends

from chat_service.dependencies import get_current_user, get_user_service
from chat_service.models import User
from chat_service.schemas.users import PhotoUpdate, UserList, UsernameUpdate, UserOut
from chat_service.services.presenters import user_out
from chat_service.services.users import UserService

router = APIRouter(tags=["users"])


@router.get("/me", response_model=UserOut, response_model_exclude_none=True)
async def get_me(user: User = Depends(get_current_user)):
    return user_out(user)


@router.put("/me/username", response_model=UserOut, response_model_exclude_none=True)
async def set_my_username(
    data: UsernameUpdate,
    user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    return await service.set_username(user, data.name)


@router.put("/me/photo", response_model=UserOut, response_model_exclude_none=True)
async def set_my_photo(
    data: PhotoUpdate,
    user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    return await service.set_photo(user, data.photo_url)


@router.get("/users", response_model=UserList, response_model_exclude_none=True)
async def search_users(
    q: Optional[str] = None,
    user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    return UserList(users=await service.search(q))
