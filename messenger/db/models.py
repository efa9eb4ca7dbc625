import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Text,
    Boolean,
    PrimaryKeyConstraint,
)
from sqlalchemy.orm import relationship

from messenger.db.database import Base, utcnow


class MessageStatus(enum.IntEnum):
    SENT = 0
    DELIVERED = 1
    READ = 2


def make_pair_key(user_a: int, user_b: int) -> str:
    """Order independent key of a pairwise conversation."""
    low, high = sorted((user_a, user_b))
    return f"{low}:{high}"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(16), unique=True, index=True, nullable=False)
    photo_url = Column(String, nullable=True)

    participations = relationship(
        "Participant", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    messages_sent = relationship(
        "Message", back_populates="sender", cascade="all, delete-orphan", passive_deletes=True
    )


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=True)  # Only meaningful for groups
    is_group = Column(Boolean, nullable=False, default=False)
    photo_url = Column(String, nullable=True)
    last_message_at = Column(DateTime, default=utcnow, index=True)
    # "<low id>:<high id>" for pairwise conversations, NULL for groups
    pair_key = Column(String, unique=True, nullable=True)

    participants = relationship(
        "Participant",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Participant(Base):
    __tablename__ = "participants"

    conversation_id = Column(
        Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    last_read_at = Column(DateTime, nullable=True)  # NULL = never read
    joined_at = Column(DateTime, default=utcnow)

    __table_args__ = (PrimaryKeyConstraint("conversation_id", "user_id"),)

    conversation = relationship("Conversation", back_populates="participants")
    user = relationship("User", back_populates="participations")


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(
        Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    content_type = Column(String, nullable=False)  # 'text' or 'photo'
    reply_to_id = Column(Integer, ForeignKey("messages.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    status = Column(Integer, nullable=False, default=int(MessageStatus.SENT))
    is_deleted = Column(Boolean, nullable=False, default=False)

    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User", back_populates="messages_sent")
    reactions = relationship(
        "Reaction", back_populates="message", cascade="all, delete-orphan", passive_deletes=True
    )


class Reaction(Base):
    __tablename__ = "reactions"

    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    emoticon = Column(String, nullable=False)

    # one reaction per user per message
    __table_args__ = (PrimaryKeyConstraint("message_id", "user_id"),)

    message = relationship("Message", back_populates="reactions")
    user = relationship("User")
