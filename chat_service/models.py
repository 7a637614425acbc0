import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(16), nullable=False, unique=True, index=True)
    display_name = Column(String(255), nullable=True)
    photo_url = Column(Text, nullable=True)


class Conversation(Base):
    __tablename__ = "conversations"
    id = Column(String(36), primary_key=True, default=new_id)
    type = Column(String(16), nullable=False)   # "direct", "group"
    name = Column(String(255), nullable=True)   # groups only
    photo_url = Column(Text, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    # "<lower-id>:<higher-id>" for direct chats, NULL for groups
    direct_key = Column(String(80), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class UsersConversation(Base):
    __tablename__ = "conversation_participants"
    conversation_id = Column(
        String(36), ForeignKey("conversations.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Message(Base):
    __tablename__ = "messages"
    id = Column(String(36), primary_key=True, default=new_id)
    conversation_id = Column(
        String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    content_type = Column(String(16), nullable=False)  # text, photo, audio, document, file
    text = Column(Text, nullable=True)
    photo_url = Column(Text, nullable=True)
    file_url = Column(Text, nullable=True)
    file_name = Column(String(255), nullable=True)
    # soft reference, survives deletion of the original
    replied_to_message_id = Column(String(36), nullable=True)
    is_forwarded = Column(Boolean, nullable=False, default=False)
    # last known status, see status.py for when it may be trusted
    status = Column(String(16), nullable=False, default="sent")
    client_message_id = Column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("sender_id", "client_message_id", name="uq_sender_client_message"),
    )


class Reaction(Base):
    __tablename__ = "reactions"
    id = Column(String(36), primary_key=True, default=new_id)
    message_id = Column(
        String(36), ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    emoji = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_reaction_message_user"),
    )


class MessageRead(Base):
    __tablename__ = "message_reads"
    message_id = Column(
        String(36), ForeignKey("messages.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    read_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class MessageDelivery(Base):
    __tablename__ = "message_deliveries"
    message_id = Column(
        String(36), ForeignKey("messages.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    delivered_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
