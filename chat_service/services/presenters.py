"""
Turn ORM rows into the wire models shared by HTTP responses and push events.
"""
from typing import Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from chat_service import store
from chat_service.models import Conversation, Message, User
from chat_service.schemas.conversations import ConversationOut
from chat_service.schemas.groups import GroupOut
from chat_service.schemas.messages import MessageOut, ReactionOut
from chat_service.schemas.users import UserOut
from chat_service.status import MessageStatus

SELF_CHAT_TITLE = "Message Yourself"


def user_out(user: User) -> UserOut:
    return UserOut.model_validate(user)


def snippet_for(message: Message) -> Optional[str]:
    if message.content_type == "photo":
        return "[photo]"
    if message.text:
        return message.text
    if message.photo_url:
        return "[photo]"
    if message.file_name:
        return message.file_name
    return f"[{message.content_type}]"


def conversation_title(conversation: Conversation, participants: Iterable[User], viewer_id: str):
    """(title, photo_url) as seen by viewer_id."""
    if conversation.type == "group":
        return conversation.name or "", conversation.photo_url
    participants = list(participants)
    for user in participants:
        if user.id != viewer_id:
            return user.name, user.photo_url
    viewer = next((u for u in participants if u.id == viewer_id), None)
    return SELF_CHAT_TITLE, conversation.photo_url or (viewer.photo_url if viewer else None)


def reaction_out(reaction, user: User) -> ReactionOut:
    return ReactionOut(
        id=reaction.id,
        emoji=reaction.emoji,
        user=user_out(user),
        created_at=reaction.created_at,
    )


async def message_views(
    db: AsyncSession,
    messages: List[Message],
    statuses: Optional[Dict[str, MessageStatus]] = None,
) -> List[MessageOut]:
    """
    Without `statuses` the stored status column is used.
    """
    if not messages:
        return []
    reactions = await store.get_reactions_for_messages(db, [m.id for m in messages])
    user_ids = {m.sender_id for m in messages}
    user_ids.update(r.user_id for rs in reactions.values() for r in rs)
    users = await store.get_users(db, user_ids)

    views = []
    for m in messages:
        status = statuses[m.id].value if statuses and m.id in statuses else m.status
        views.append(
            MessageOut(
                id=m.id,
                conversation_id=m.conversation_id,
                sender=user_out(users[m.sender_id]),
                created_at=m.created_at,
                content_type=m.content_type,
                text=m.text,
                photo_url=m.photo_url,
                file_url=m.file_url,
                file_name=m.file_name,
                replied_to_message_id=m.replied_to_message_id,
                status=status,
                reactions=[
                    reaction_out(r, users[r.user_id])
                    for r in reactions.get(m.id, [])
                    if r.user_id in users
                ],
                is_forwarded=bool(m.is_forwarded),
            )
        )
    return views


def conversation_view(
    conversation: Conversation,
    participants: List[User],
    viewer_id: str,
    messages: Optional[List[MessageOut]] = None,
) -> ConversationOut:
    title, photo_url = conversation_title(conversation, participants, viewer_id)
    return ConversationOut(
        id=conversation.id,
        type=conversation.type,
        title=title,
        photo_url=photo_url,
        participants=[user_out(u) for u in participants],
        messages=messages or [],
    )


def group_view(conversation: Conversation, members: List[User]) -> GroupOut:
    return GroupOut(
        id=conversation.id,
        name=conversation.name or "",
        photo_url=conversation.photo_url,
        created_by=conversation.created_by,
        members=[user_out(u) for u in members],
    )
