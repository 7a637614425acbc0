from typing import Optional

from fastapi import Depends, Request, WebSocket
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from chat_service.config import DATABASE_URL
from chat_service.errors import Unauthorized
from chat_service.message_transport.broadcaster import Broadcaster
from chat_service.models import User
from chat_service import store
from chat_service.services.conversations import ConversationService
from chat_service.services.groups import GroupService
from chat_service.services.users import UserService


# --- Async DB Engine Setup ---
if DATABASE_URL.startswith("sqlite"):
    # aiosqlite connections are cheap; don't share them between event loops
    engine = create_async_engine(DATABASE_URL, echo=False, poolclass=NullPool)
else:
    engine = create_async_engine(DATABASE_URL, echo=False, pool_pre_ping=True)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db():
    """
    Async dependency for FastAPI routes to get an Async SQLAlchemy session.
    """
    async with AsyncSessionLocal() as session:
        yield session


def _extract_token(
    request: Optional[Request] = None, websocket: Optional[WebSocket] = None
) -> str:
    """
    Extract the bearer credential from:
      - HTTP: request.headers["Authorization"]
      - WebSocket: the "token" query parameter, or the Authorization header
    """
    token = None

    if request is not None:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header[len("Bearer "):].strip()
    elif websocket is not None:
        token = websocket.query_params.get("token")
        if not token:
            auth_header = websocket.headers.get("authorization")
            if auth_header and auth_header.startswith("Bearer "):
                token = auth_header[len("Bearer "):].strip()

    if not token:
        raise Unauthorized("Authorization header is required")
    return token


async def authenticate(db: AsyncSession, token: str) -> User:
    # the bearer credential is the user identifier returned by POST /session
    user = await store.get_user(db, token)
    if user is None:
        raise Unauthorized("Invalid identifier")
    return user


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    return await authenticate(db, _extract_token(request=request))


async def get_websocket_user(websocket: WebSocket) -> User:
    token = _extract_token(websocket=websocket)
    async with AsyncSessionLocal() as db:
        return await authenticate(db, token)


def get_broadcaster(request: Request) -> Broadcaster:
    return request.app.state.broadcaster


def get_conversation_service(
    db: AsyncSession = Depends(get_db), broadcaster: Broadcaster = Depends(get_broadcaster)
) -> ConversationService:
    return ConversationService(db, broadcaster)


def get_group_service(
    db: AsyncSession = Depends(get_db), broadcaster: Broadcaster = Depends(get_broadcaster)
) -> GroupService:
    return GroupService(db, broadcaster)


def get_user_service(
    db: AsyncSession = Depends(get_db), broadcaster: Broadcaster = Depends(get_broadcaster)
) -> UserService:
    return UserService(db, broadcaster)
