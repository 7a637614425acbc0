import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chat_service import store
from chat_service.errors import Conflict
from chat_service.message_transport import events
from chat_service.message_transport.broadcaster import Broadcaster
from chat_service.models import User
from chat_service.schemas.users import UserOut
from chat_service.services.presenters import user_out

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: AsyncSession, broadcaster: Optional[Broadcaster] = None):
        self.db = db
        self.broadcaster = broadcaster

    async def login(self, name: str) -> Tuple[str, bool]:
        """
        Simplified login: the name is the account. Returns (identifier, created).
        The identifier doubles as the bearer token.
        """
        user = await store.get_user_by_name(self.db, name)
        if user is not None:
            return user.id, False

        user = await store.create_user(self.db, name)
        user_id = user.id
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            user = await store.get_user_by_name(self.db, name)
            if user is None:
                raise
            return user.id, False
        logger.info("[users] New user %s registered as %s", user_id, name)
        return user_id, True

    async def search(self, query: Optional[str] = None) -> List[UserOut]:
        return [user_out(u) for u in await store.search_users(self.db, query)]

    async def set_username(self, user: User, name: str) -> UserOut:
        if name == user.name:
            return user_out(user)
        taken = await store.get_user_by_name(self.db, name)
        if taken is not None and taken.id != user.id:
            raise Conflict("Username already taken")

        user_id = user.id
        user.name = name
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise Conflict("Username already taken")

        await self._publish_profile(user_id, events.profile_updated(user_id, name=name))
        return user_out(user)

    async def set_photo(self, user: User, photo_url: str) -> UserOut:
        user.photo_url = photo_url
        await self.db.commit()
        await self._publish_profile(user.id, events.profile_updated(user.id, photo_url=photo_url))
        return user_out(user)

    async def _publish_profile(self, user_id: str, event: events.PushEvent):
        # everyone sharing at least one conversation, each of them once
        contacts = await store.get_contact_ids(self.db, user_id)
        if self.broadcaster is not None and contacts:
            self.broadcaster.notify(contacts, event)
