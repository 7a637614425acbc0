"""
Query layer between the services and the database.

Functions take the request's AsyncSession and never commit; the calling
service owns the transaction. Marker and reaction writes are single
statements with ON CONFLICT clauses so concurrent requests stay idempotent.
"""
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import and_, delete, exists, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from chat_service.models import (
    Conversation,
    Message,
    MessageDelivery,
    MessageRead,
    Reaction,
    User,
    UsersConversation,
    new_id,
    utcnow,
)

# keeps multi-row VALUES under SQLite's bound-parameter limit
_CHUNK_SIZE = 250


def _insert(db: AsyncSession, model):
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)


def _chunks(items: Sequence, size: int = _CHUNK_SIZE):
    for start in range(0, len(items), size):
        yield items[start:start + size]


# --- Users ---
async def create_user(db: AsyncSession, name: str) -> User:
    user = User(id=new_id(), name=name)
    db.add(user)
    await db.flush()
    return user


async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
    return await db.get(User, user_id)


async def get_user_by_name(db: AsyncSession, name: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.name == name))
    return result.scalar_one_or_none()


async def get_users(db: AsyncSession, user_ids: Iterable[str]) -> Dict[str, User]:
    ids = list(set(user_ids))
    if not ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(ids)))
    return {u.id: u for u in result.scalars().all()}


async def search_users(db: AsyncSession, query: Optional[str] = None) -> List[User]:
    stmt = select(User).order_by(User.name)
    if query:
        stmt = stmt.where(User.name.ilike(f"%{query}%"))
    result = await db.execute(stmt)
    return list(result.scalars().all())


# --- Conversations & participants ---
def direct_key(user_a: str, user_b: str) -> str:
    low, high = sorted((user_a, user_b))
    return f"{low}:{high}"


async def create_conversation(
    db: AsyncSession,
    type: str,
    name: Optional[str] = None,
    created_by: Optional[str] = None,
    key: Optional[str] = None,
) -> Conversation:
    convo = Conversation(
        id=new_id(),
        type=type,
        name=name,
        created_by=created_by,
        direct_key=key,
        created_at=utcnow(),
    )
    db.add(convo)
    await db.flush()
    return convo


async def get_conversation(db: AsyncSession, conversation_id: str) -> Optional[Conversation]:
    return await db.get(Conversation, conversation_id)


async def get_direct_conversation(
    db: AsyncSession, user_a: str, user_b: str
) -> Optional[Conversation]:
    result = await db.execute(
        select(Conversation).where(Conversation.direct_key == direct_key(user_a, user_b))
    )
    return result.scalar_one_or_none()


async def get_user_conversations(db: AsyncSession, user_id: str) -> List[Conversation]:
    stmt = (
        select(Conversation)
        .join(UsersConversation, Conversation.id == UsersConversation.conversation_id)
        .where(UsersConversation.user_id == user_id)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def add_participants(db: AsyncSession, conversation_id: str, user_ids: Iterable[str]):
    rows = [
        {"conversation_id": conversation_id, "user_id": uid, "joined_at": utcnow()}
        for uid in dict.fromkeys(user_ids)
    ]
    for chunk in _chunks(rows):
        await db.execute(_insert(db, UsersConversation).values(chunk).on_conflict_do_nothing())


async def remove_participant(db: AsyncSession, conversation_id: str, user_id: str):
    await db.execute(
        delete(UsersConversation).where(
            UsersConversation.conversation_id == conversation_id,
            UsersConversation.user_id == user_id,
        )
    )


async def is_participant(db: AsyncSession, conversation_id: str, user_id: str) -> bool:
    stmt = select(
        exists().where(
            UsersConversation.conversation_id == conversation_id,
            UsersConversation.user_id == user_id,
        )
    )
    return bool(await db.scalar(stmt))


async def get_participant_ids(db: AsyncSession, conversation_id: str) -> List[str]:
    stmt = select(UsersConversation.user_id).where(
        UsersConversation.conversation_id == conversation_id
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_participants(db: AsyncSession, conversation_id: str) -> List[User]:
    stmt = (
        select(User)
        .join(UsersConversation, User.id == UsersConversation.user_id)
        .where(UsersConversation.conversation_id == conversation_id)
        .order_by(UsersConversation.joined_at, User.name)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_participant_ids_by_conversation(
    db: AsyncSession, conversation_ids: Iterable[str]
) -> Dict[str, Set[str]]:
    ids = list(set(conversation_ids))
    members: Dict[str, Set[str]] = {cid: set() for cid in ids}
    if not ids:
        return members
    stmt = select(UsersConversation.conversation_id, UsersConversation.user_id).where(
        UsersConversation.conversation_id.in_(ids)
    )
    for conversation_id, user_id in (await db.execute(stmt)).all():
        members[conversation_id].add(user_id)
    return members


async def get_contact_ids(db: AsyncSession, user_id: str) -> Set[str]:
    """
    Everyone who shares at least one conversation with user_id, without user_id.
    """
    mine = select(UsersConversation.conversation_id).where(UsersConversation.user_id == user_id)
    stmt = (
        select(UsersConversation.user_id)
        .where(
            UsersConversation.conversation_id.in_(mine),
            UsersConversation.user_id != user_id,
        )
        .distinct()
    )
    result = await db.execute(stmt)
    return set(result.scalars().all())


# --- Messages ---
async def create_message(db: AsyncSession, **fields) -> Message:
    fields.setdefault("id", new_id())
    fields.setdefault("created_at", utcnow())
    fields.setdefault("status", "sent")
    message = Message(**fields)
    db.add(message)
    await db.flush()
    return message


async def get_message(db: AsyncSession, message_id: str) -> Optional[Message]:
    return await db.get(Message, message_id)


async def get_message_by_client_id(
    db: AsyncSession, sender_id: str, client_message_id: str
) -> Optional[Message]:
    stmt = select(Message).where(
        Message.sender_id == sender_id,
        Message.client_message_id == client_message_id,
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_messages(
    db: AsyncSession, conversation_id: str, limit: Optional[int] = None, offset: int = 0
) -> List[Message]:
    """Newest first."""
    stmt = (
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc(), Message.id)
        .offset(offset)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_last_messages(
    db: AsyncSession, conversation_ids: Iterable[str]
) -> Dict[str, Message]:
    ids = list(set(conversation_ids))
    if not ids:
        return {}
    latest = (
        select(Message.conversation_id, func.max(Message.created_at).label("last_at"))
        .where(Message.conversation_id.in_(ids))
        .group_by(Message.conversation_id)
        .subquery()
    )
    stmt = select(Message).join(
        latest,
        and_(
            Message.conversation_id == latest.c.conversation_id,
            Message.created_at == latest.c.last_at,
        ),
    )
    result = await db.execute(stmt)
    return {m.conversation_id: m for m in result.scalars().all()}


async def delete_message(db: AsyncSession, message: Message):
    # markers and reactions go with the message; replies keep their dangling id
    for model in (MessageRead, MessageDelivery, Reaction):
        await db.execute(delete(model).where(model.message_id == message.id))
    await db.delete(message)
    await db.flush()


# --- Read / delivery markers ---
async def get_unread_message_ids(
    db: AsyncSession, conversation_id: str, user_id: str
) -> List[str]:
    """Messages from others in this conversation that user_id has not read yet."""
    already_read = exists().where(
        MessageRead.message_id == Message.id, MessageRead.user_id == user_id
    )
    stmt = select(Message.id).where(
        Message.conversation_id == conversation_id,
        Message.sender_id != user_id,
        ~already_read,
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_undelivered_message_ids(db: AsyncSession, user_id: str) -> List[str]:
    """Messages from others, in any of user_id's conversations, with no marker for user_id."""
    mine = select(UsersConversation.conversation_id).where(UsersConversation.user_id == user_id)
    has_marker = or_(
        exists().where(
            MessageDelivery.message_id == Message.id, MessageDelivery.user_id == user_id
        ),
        exists().where(MessageRead.message_id == Message.id, MessageRead.user_id == user_id),
    )
    stmt = select(Message.id).where(
        Message.conversation_id.in_(mine),
        Message.sender_id != user_id,
        ~has_marker,
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def insert_read_markers(db: AsyncSession, user_id: str, message_ids: Sequence[str]):
    now = utcnow()
    rows = [{"message_id": mid, "user_id": user_id, "read_at": now} for mid in message_ids]
    for chunk in _chunks(rows):
        await db.execute(_insert(db, MessageRead).values(chunk).on_conflict_do_nothing())


async def insert_delivery_markers(db: AsyncSession, user_id: str, message_ids: Sequence[str]):
    now = utcnow()
    rows = [{"message_id": mid, "user_id": user_id, "delivered_at": now} for mid in message_ids]
    for chunk in _chunks(rows):
        await db.execute(_insert(db, MessageDelivery).values(chunk).on_conflict_do_nothing())


async def get_markers(
    db: AsyncSession, message_ids: Iterable[str]
) -> Tuple[Dict[str, Set[str]], Dict[str, Set[str]]]:
    """Return (delivered_to, read_by), each message id -> set of user ids."""
    ids = list(set(message_ids))
    delivered: Dict[str, Set[str]] = defaultdict(set)
    read: Dict[str, Set[str]] = defaultdict(set)
    for chunk in _chunks(ids, 500):
        rows = await db.execute(
            select(MessageDelivery.message_id, MessageDelivery.user_id).where(
                MessageDelivery.message_id.in_(chunk)
            )
        )
        for message_id, user_id in rows.all():
            delivered[message_id].add(user_id)
        rows = await db.execute(
            select(MessageRead.message_id, MessageRead.user_id).where(
                MessageRead.message_id.in_(chunk)
            )
        )
        for message_id, user_id in rows.all():
            read[message_id].add(user_id)
    return delivered, read


async def upgrade_cached_status(db: AsyncSession, message_ids: Sequence[str], status: str):
    """Raise the stored status hint; never lowers it."""
    lower = {"received": ["sent"], "read": ["sent", "received"]}.get(status)
    if not lower or not message_ids:
        return
    for chunk in _chunks(list(message_ids), 500):
        await db.execute(
            update(Message)
            .where(Message.id.in_(chunk), Message.status.in_(lower))
            .values(status=status)
            .execution_options(synchronize_session=False)
        )


# --- Reactions ---
async def upsert_reaction(db: AsyncSession, message_id: str, user_id: str, emoji: str) -> Reaction:
    """One reaction per (message, user): a new one replaces the old row and id."""
    reaction_id = new_id()
    now = utcnow()
    stmt = (
        _insert(db, Reaction)
        .values(id=reaction_id, message_id=message_id, user_id=user_id, emoji=emoji, created_at=now)
        .on_conflict_do_update(
            index_elements=["message_id", "user_id"],
            set_={"id": reaction_id, "emoji": emoji, "created_at": now},
        )
    )
    await db.execute(stmt)
    return await db.get(Reaction, reaction_id)


async def get_reaction(db: AsyncSession, reaction_id: str) -> Optional[Reaction]:
    return await db.get(Reaction, reaction_id)


async def get_user_reaction(db: AsyncSession, message_id: str, user_id: str) -> Optional[Reaction]:
    stmt = select(Reaction).where(Reaction.message_id == message_id, Reaction.user_id == user_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_reactions_for_messages(
    db: AsyncSession, message_ids: Iterable[str]
) -> Dict[str, List[Reaction]]:
    ids = list(set(message_ids))
    grouped: Dict[str, List[Reaction]] = defaultdict(list)
    for chunk in _chunks(ids, 500):
        stmt = select(Reaction).where(Reaction.message_id.in_(chunk)).order_by(Reaction.created_at)
        for reaction in (await db.execute(stmt)).scalars().all():
            grouped[reaction.message_id].append(reaction)
    return grouped


async def delete_reaction(db: AsyncSession, reaction: Reaction):
    await db.delete(reaction)
    await db.flush()
