from fastapi import APIRouter, Depends, Response, status

from chat_service.dependencies import get_current_user, get_group_service
from chat_service.models import User
from chat_service.schemas.groups import GroupCreate, GroupMemberAdd, GroupOut, GroupRename
from chat_service.schemas.users import PhotoUpdate
from chat_service.services.groups import GroupService

router = APIRouter(prefix="/groups", tags=["groups"])


@router.post(
    "",
    response_model=GroupOut,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_group(
    data: GroupCreate,
    user: User = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.create_group(user, data.name, data.member_ids)


@router.get("/{group_id}", response_model=GroupOut, response_model_exclude_none=True)
async def get_group(
    group_id: str,
    user: User = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.get_group(user, group_id)


@router.post("/{group_id}/members", response_model=GroupOut, response_model_exclude_none=True)
async def add_to_group(
    group_id: str,
    data: GroupMemberAdd,
    user: User = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.add_member(user, group_id, data.user_id)


@router.delete("/{group_id}/members/me", status_code=status.HTTP_204_NO_CONTENT)
async def leave_group(
    group_id: str,
    user: User = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    await service.leave_group(user, group_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{group_id}/name", response_model=GroupOut, response_model_exclude_none=True)
async def set_group_name(
    group_id: str,
    data: GroupRename,
    user: User = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.rename_group(user, group_id, data.name)


@router.put("/{group_id}/photo", response_model=GroupOut, response_model_exclude_none=True)
async def set_group_photo(
    group_id: str,
    data: PhotoUpdate,
    user: User = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
):
    return await service.set_group_photo(user, group_id, data.photo_url)
