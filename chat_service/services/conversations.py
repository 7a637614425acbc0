import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chat_service import store
from chat_service.errors import BadRequest, Conflict, Forbidden, NotFound
from chat_service.message_transport import events
from chat_service.message_transport.broadcaster import Broadcaster
from chat_service.models import Conversation, Message, User
from chat_service.schemas.common import as_utc
from chat_service.schemas.conversations import ConversationOut, ConversationSummary
from chat_service.schemas.messages import MessageCreate, MessageOut, ReactionOut
from chat_service.services.presenters import (
    conversation_title,
    conversation_view,
    message_views,
    reaction_out,
    snippet_for,
)
from chat_service.status import MessageStatus, refresh_cached_status, resolve_statuses

logger = logging.getLogger(__name__)

CONTENT_TYPES = ("text", "photo", "audio", "document", "file")
FILE_CONTENT_TYPES = ("audio", "document", "file")


def validate_content(
    content_type: str,
    text: Optional[str] = None,
    photo_url: Optional[str] = None,
    file_url: Optional[str] = None,
    file_name: Optional[str] = None,
):
    if content_type not in CONTENT_TYPES:
        raise BadRequest("contentType must be 'text', 'photo', 'audio', 'document', or 'file'")
    if content_type == "text" and not (text or photo_url):
        raise BadRequest("text or photoUrl is required for text messages")
    if content_type == "photo" and not photo_url:
        raise BadRequest("photoUrl is required for photo messages")
    if content_type in FILE_CONTENT_TYPES and not (file_url and file_name):
        raise BadRequest("fileUrl and fileName are required for audio/document/file messages")


class ConversationService:
    """
    Conversation and message operations for one request.

    Every mutating method commits before it notifies, so a client reacting
    to a push event always finds the change in the database.
    """

    def __init__(self, db: AsyncSession, broadcaster: Broadcaster):
        self.db = db
        self.broadcaster = broadcaster

    async def require_membership(self, conversation_id: str, user_id: str) -> Conversation:
        # non-participants get the same answer as for a missing conversation
        conversation = await store.get_conversation(self.db, conversation_id)
        if conversation is None or not await store.is_participant(self.db, conversation_id, user_id):
            raise NotFound("Conversation not found")
        return conversation

    async def _require_message(self, conversation_id: str, message_id: str) -> Message:
        message = await store.get_message(self.db, message_id)
        if message is None or message.conversation_id != conversation_id:
            raise NotFound("Message not found")
        return message

    # --- conversations ---
    async def list_conversations(self, user: User) -> List[ConversationSummary]:
        undelivered = await store.get_undelivered_message_ids(self.db, user.id)
        if undelivered:
            await store.insert_delivery_markers(self.db, user.id, undelivered)
            await store.upgrade_cached_status(self.db, undelivered, MessageStatus.RECEIVED.value)
            await self.db.commit()
            logger.debug("[conversations] %d message(s) delivered to %s", len(undelivered), user.id)

        conversations = await store.get_user_conversations(self.db, user.id)
        ids = [c.id for c in conversations]
        members = await store.get_participant_ids_by_conversation(self.db, ids)
        users = await store.get_users(self.db, {uid for uids in members.values() for uid in uids})
        last_messages = await store.get_last_messages(self.db, ids)

        summaries = []
        for conversation in conversations:
            participants = [users[uid] for uid in members[conversation.id] if uid in users]
            title, photo_url = conversation_title(conversation, participants, user.id)
            last = last_messages.get(conversation.id)
            summaries.append(
                ConversationSummary(
                    id=conversation.id,
                    type=conversation.type,
                    title=title,
                    photo_url=photo_url,
                    last_message_at=last.created_at if last else None,
                    last_message_snippet=snippet_for(last) if last else None,
                    last_message_is_photo=bool(last and last.content_type == "photo"),
                )
            )

        created = {c.id: c.created_at for c in conversations}
        summaries.sort(
            key=lambda s: as_utc(s.last_message_at or created[s.id]),
            reverse=True,
        )
        return summaries

    async def start_direct_conversation(self, user: User, other_id: str) -> Tuple[ConversationOut, bool]:
        """Returns (conversation, created)."""
        other = await store.get_user(self.db, other_id)
        if other is None:
            raise NotFound("User not found")

        user_id, other_id = user.id, other.id
        existing = await store.get_direct_conversation(self.db, user_id, other_id)
        if existing is not None:
            participants = await store.get_participants(self.db, existing.id)
            return conversation_view(existing, participants, user.id), False

        conversation = await store.create_conversation(
            self.db, "direct", key=store.direct_key(user.id, other.id)
        )
        await store.add_participants(self.db, conversation.id, [user.id, other.id])
        try:
            await self.db.commit()
        except IntegrityError:
            # lost the race against a concurrent request for the same pair
            await self.db.rollback()
            existing = await store.get_direct_conversation(self.db, user_id, other_id)
            if existing is None:
                raise
            participants = await store.get_participants(self.db, existing.id)
            return conversation_view(existing, participants, user_id), False

        participants = await store.get_participants(self.db, conversation.id)
        logger.info("[conversations] Direct conversation %s created by %s", conversation.id, user.id)
        for participant in participants:
            self.broadcaster.notify(
                [participant.id],
                events.new_conversation(conversation_view(conversation, participants, participant.id)),
            )
        return conversation_view(conversation, participants, user.id), True

    async def open_conversation(self, user: User, conversation_id: str) -> ConversationOut:
        """
        Full conversation with live statuses. Marks everything the caller
        has not read yet as read.
        """
        conversation = await self.require_membership(conversation_id, user.id)
        participants = await store.get_participants(self.db, conversation_id)
        participant_ids = [p.id for p in participants]

        unread = await store.get_unread_message_ids(self.db, conversation_id, user.id)
        if unread:
            await store.insert_read_markers(self.db, user.id, unread)
            # statuses below must see markers committed by concurrent readers
            await self.db.commit()

        messages = await store.get_messages(self.db, conversation_id)
        statuses = await resolve_statuses(self.db, messages, participant_ids)

        if unread:
            await refresh_cached_status(self.db, {mid: statuses[mid] for mid in unread if mid in statuses})
            await self.db.commit()
            fully_read = [mid for mid in unread if statuses.get(mid) == MessageStatus.READ]
            others = [pid for pid in participant_ids if pid != user.id]
            self.broadcaster.notify(
                others, events.messages_read(conversation_id, user.id, fully_read)
            )

        views = await message_views(self.db, messages, statuses)
        return conversation_view(conversation, participants, user.id, views)

    async def get_message_page(
        self, user: User, conversation_id: str, page: int, size: int
    ) -> List[MessageOut]:
        await self.require_membership(conversation_id, user.id)
        messages = await store.get_messages(
            self.db, conversation_id, limit=size, offset=(page - 1) * size
        )
        return await message_views(self.db, messages)

    # --- messages ---
    async def send_message(
        self, user: User, conversation_id: str, payload: MessageCreate
    ) -> Tuple[MessageOut, bool]:
        """Returns (message, created). A repeated clientMessageId is not created twice."""
        user_id = user.id
        await self.require_membership(conversation_id, user_id)

        if payload.client_message_id:
            existing = await self._existing_send(user_id, conversation_id, payload.client_message_id)
            if existing is not None:
                return existing, False

        validate_content(
            payload.content_type, payload.text, payload.photo_url, payload.file_url, payload.file_name
        )
        if payload.reply_to_message_id:
            replied = await store.get_message(self.db, payload.reply_to_message_id)
            if replied is None or replied.conversation_id != conversation_id:
                raise NotFound("Replied-to message not found")

        message = await store.create_message(
            self.db,
            conversation_id=conversation_id,
            sender_id=user.id,
            content_type=payload.content_type,
            text=payload.text,
            photo_url=payload.photo_url,
            file_url=payload.file_url,
            file_name=payload.file_name,
            replied_to_message_id=payload.reply_to_message_id,
            client_message_id=payload.client_message_id,
        )
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            if not payload.client_message_id:
                raise
            existing = await self._existing_send(user_id, conversation_id, payload.client_message_id)
            if existing is None:
                raise
            return existing, False

        return await self._announce(message), True

    async def _existing_send(
        self, user_id: str, conversation_id: str, client_message_id: str
    ) -> Optional[MessageOut]:
        existing = await store.get_message_by_client_id(self.db, user_id, client_message_id)
        if existing is None:
            return None
        if existing.conversation_id != conversation_id:
            raise Conflict("clientMessageId was already used in another conversation")
        logger.info("[conversations] Duplicate send %s from %s ignored", client_message_id, user_id)
        participant_ids = await store.get_participant_ids(self.db, conversation_id)
        statuses = await resolve_statuses(self.db, [existing], participant_ids)
        return (await message_views(self.db, [existing], statuses))[0]

    async def _announce(self, message: Message) -> MessageOut:
        participant_ids = await store.get_participant_ids(self.db, message.conversation_id)
        view = (await message_views(self.db, [message]))[0]
        self.broadcaster.notify(participant_ids, events.new_message(view))
        self.broadcaster.notify(
            participant_ids,
            events.conversation_updated(
                message.conversation_id,
                snippet_for(message),
                message.content_type == "photo",
                message.created_at,
            ),
        )
        return view

    async def delete_message(self, user: User, conversation_id: str, message_id: str):
        await self.require_membership(conversation_id, user.id)
        message = await self._require_message(conversation_id, message_id)
        if message.sender_id != user.id:
            raise Forbidden("You can only delete your own messages")

        await store.delete_message(self.db, message)
        await self.db.commit()
        logger.info("[conversations] Message %s deleted by %s", message_id, user.id)

        participant_ids = await store.get_participant_ids(self.db, conversation_id)
        self.broadcaster.notify(participant_ids, events.message_deleted(conversation_id, message_id))
        last = (await store.get_last_messages(self.db, [conversation_id])).get(conversation_id)
        if last is None:
            # conversation is empty now; clients drop the old snippet
            update = events.conversation_updated(conversation_id, None, False, None)
        else:
            update = events.conversation_updated(
                conversation_id, snippet_for(last), last.content_type == "photo", last.created_at
            )
        self.broadcaster.notify(participant_ids, update)

    async def forward_message(
        self, user: User, conversation_id: str, message_id: str, target_conversation_id: str
    ) -> MessageOut:
        await self.require_membership(conversation_id, user.id)
        original = await self._require_message(conversation_id, message_id)
        target = await store.get_conversation(self.db, target_conversation_id)
        if target is None or not await store.is_participant(self.db, target.id, user.id):
            raise NotFound("Target conversation not found")

        # content only: no status, reactions or reply link
        message = await store.create_message(
            self.db,
            conversation_id=target.id,
            sender_id=user.id,
            content_type=original.content_type,
            text=original.text,
            photo_url=original.photo_url,
            file_url=original.file_url,
            file_name=original.file_name,
            is_forwarded=True,
        )
        await self.db.commit()
        return await self._announce(message)

    # --- reactions ---
    async def react(
        self, user: User, conversation_id: str, message_id: str, emoji: str
    ) -> ReactionOut:
        await self.require_membership(conversation_id, user.id)
        await self._require_message(conversation_id, message_id)

        previous = await store.get_user_reaction(self.db, message_id, user.id)
        previous_id = previous.id if previous is not None else None
        reaction = await store.upsert_reaction(self.db, message_id, user.id, emoji)
        await self.db.commit()

        view = reaction_out(reaction, user)
        participant_ids = await store.get_participant_ids(self.db, conversation_id)
        if previous_id is not None:
            self.broadcaster.notify(
                participant_ids,
                events.reaction_removed(conversation_id, message_id, previous_id, user.id),
            )
        self.broadcaster.notify(
            participant_ids, events.reaction_added(conversation_id, message_id, view)
        )
        return view

    async def unreact(self, user: User, conversation_id: str, message_id: str, reaction_id: str):
        await self.require_membership(conversation_id, user.id)
        await self._require_message(conversation_id, message_id)
        reaction = await store.get_reaction(self.db, reaction_id)
        if reaction is None or reaction.message_id != message_id:
            raise NotFound("Reaction not found")
        if reaction.user_id != user.id:
            raise Forbidden("You can only remove your own reactions")

        await store.delete_reaction(self.db, reaction)
        await self.db.commit()

        participant_ids = await store.get_participant_ids(self.db, conversation_id)
        self.broadcaster.notify(
            participant_ids,
            events.reaction_removed(conversation_id, message_id, reaction_id, user.id),
        )
