import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from chat_service import store
from chat_service.errors import NotFound
from chat_service.message_transport import events
from chat_service.message_transport.broadcaster import Broadcaster
from chat_service.models import Conversation, User
from chat_service.schemas.groups import GroupOut
from chat_service.services.presenters import conversation_view, group_view

logger = logging.getLogger(__name__)


class GroupService:
    def __init__(self, db: AsyncSession, broadcaster: Broadcaster):
        self.db = db
        self.broadcaster = broadcaster

    async def _require_group(self, group_id: str, user_id: str) -> Conversation:
        group = await store.get_conversation(self.db, group_id)
        if (
            group is None
            or group.type != "group"
            or not await store.is_participant(self.db, group_id, user_id)
        ):
            raise NotFound("Group not found or you are not a member")
        return group

    async def create_group(self, user: User, name: str, member_ids: List[str]) -> GroupOut:
        """The creator is always a member; unknown member ids are rejected."""
        member_ids = [uid for uid in dict.fromkeys(member_ids) if uid != user.id]
        found = await store.get_users(self.db, member_ids)
        missing = [uid for uid in member_ids if uid not in found]
        if missing:
            raise NotFound(f"User not found: {missing[0]}")

        group = await store.create_conversation(self.db, "group", name=name, created_by=user.id)
        await store.add_participants(self.db, group.id, [user.id, *member_ids])
        await self.db.commit()
        logger.info("[groups] Group %s created by %s with %d member(s)", group.id, user.id, len(member_ids) + 1)

        members = await store.get_participants(self.db, group.id)
        self.broadcaster.notify(
            [m.id for m in members],
            events.new_conversation(conversation_view(group, members, user.id)),
        )
        return group_view(group, members)

    async def get_group(self, user: User, group_id: str) -> GroupOut:
        group = await self._require_group(group_id, user.id)
        return group_view(group, await store.get_participants(self.db, group_id))

    async def add_member(self, user: User, group_id: str, new_member_id: str) -> GroupOut:
        group = await self._require_group(group_id, user.id)
        new_member = await store.get_user(self.db, new_member_id)
        if new_member is None:
            raise NotFound("User to add not found")

        already_member = await store.is_participant(self.db, group_id, new_member.id)
        if not already_member:
            await store.add_participants(self.db, group_id, [new_member.id])
            await self.db.commit()
            logger.info("[groups] %s added %s to group %s", user.id, new_member.id, group_id)

        members = await store.get_participants(self.db, group_id)
        if not already_member:
            self.broadcaster.notify(
                [new_member.id],
                events.new_conversation(conversation_view(group, members, new_member.id)),
            )
        return group_view(group, members)

    async def leave_group(self, user: User, group_id: str):
        await self._require_group(group_id, user.id)
        await store.remove_participant(self.db, group_id, user.id)
        await self.db.commit()
        logger.info("[groups] %s left group %s", user.id, group_id)

    async def rename_group(self, user: User, group_id: str, name: str) -> GroupOut:
        group = await self._require_group(group_id, user.id)
        group.name = name
        await self.db.commit()
        return await self._publish_update(group)

    async def set_group_photo(self, user: User, group_id: str, photo_url: str) -> GroupOut:
        group = await self._require_group(group_id, user.id)
        group.photo_url = photo_url
        await self.db.commit()
        return await self._publish_update(group)

    async def _publish_update(self, group: Conversation) -> GroupOut:
        members = await store.get_participants(self.db, group.id)
        view = group_view(group, members)
        self.broadcaster.notify([m.id for m in members], events.group_updated(view))
        return view
