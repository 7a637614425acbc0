from fastapi import APIRouter, Depends, status

from chat_service.dependencies import get_user_service
from chat_service.schemas.users import LoginRequest, LoginResponse
from chat_service.services.users import UserService

router = APIRouter(tags=["session"])


@router.post("/session", response_model=LoginResponse, status_code=status.HTTP_201_CREATED)
async def do_login(data: LoginRequest, service: UserService = Depends(get_user_service)):
    """
    Log in by username, creating the account on first use.
    The returned identifier is the bearer token for every other call.
    """
    identifier, _ = await service.login(data.name)
    return LoginResponse(identifier=identifier)
