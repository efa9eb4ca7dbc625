from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from messenger.core.config import (
    CONTENT_TYPE_PHOTO,
    CONTENT_TYPE_TEXT,
    MAX_FORWARD_TARGETS,
    MAX_PHOTO_LENGTH,
    MAX_TEXT_LENGTH,
    logger,
)
from messenger.core.errors import (
    AuthorizationError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from messenger.db.conversation_crud import (
    get_conversation,
    is_participant,
    other_markers,
    read_markers,
)
from messenger.db.database import transaction, utcnow
from messenger.db.models import Message, MessageStatus, Participant
from messenger.db.reaction_crud import reactions_by_message
from messenger.db.status import derive_status

CONTENT_LIMITS = {
    CONTENT_TYPE_TEXT: MAX_TEXT_LENGTH,
    CONTENT_TYPE_PHOTO: MAX_PHOTO_LENGTH,
}


def validate_content(content: str, content_type: str) -> None:
    if content_type not in CONTENT_LIMITS:
        raise ValidationError("Content type must be 'text' or 'photo'")
    limit = CONTENT_LIMITS[content_type]
    if not content or len(content) > limit:
        raise ValidationError(f"Content must be between 1 and {limit} characters")


def message_to_dict(
    message: Message,
    markers: Dict[int, object],
    reactions: Optional[List[dict]] = None,
) -> dict:
    """Serialize a message with its derived status"""
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "sender_id": message.sender_id,
        "sender_name": message.sender.name if message.sender else "",
        "content": "" if message.is_deleted else message.content,
        "content_type": message.content_type,
        "reply_to_id": message.reply_to_id,
        "created_at": message.created_at,
        "status": derive_status(
            message.status, message.created_at, other_markers(markers, message.sender_id)
        ),
        "is_deleted": message.is_deleted,
        "reactions": [] if message.is_deleted else (reactions or []),
    }


def get_message(db: Session, message_id: int) -> Message:
    """Single message lookup, deleted ones included"""
    message = (
        db.query(Message)
        .options(joinedload(Message.sender))
        .filter(Message.id == message_id)
        .first()
    )
    if not message:
        raise NotFoundError("Message not found")
    return message


def send_message(
    db: Session,
    conversation_id: int,
    sender_id: int,
    content: str,
    content_type: str,
    reply_to_id: Optional[int] = None,
) -> Message:
    """Store a new message and bump the conversation's activity timestamp.

    Both writes are committed together.
    """
    validate_content(content, content_type)
    conversation = get_conversation(db, conversation_id)
    if not is_participant(db, conversation_id, sender_id):
        raise AuthorizationError("You are not a member of this conversation")

    if reply_to_id is not None:
        original = db.query(Message).filter(Message.id == reply_to_id).first()
        if not original or original.conversation_id != conversation_id:
            raise NotFoundError("Message to reply to not found in this conversation")

    now = utcnow()
    message = Message(
        conversation_id=conversation_id,
        sender_id=sender_id,
        content=content,
        content_type=content_type,
        reply_to_id=reply_to_id,
        created_at=now,
        status=int(MessageStatus.SENT),
    )
    with transaction(db, "send message"):
        db.add(message)
        conversation.last_message_at = now

    db.refresh(message)
    return message


def list_messages(db: Session, conversation_id: int) -> List[dict]:
    """Messages of a conversation in creation order"""
    messages = (
        db.query(Message)
        .options(joinedload(Message.sender))
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at, Message.id)
        .all()
    )
    markers = read_markers(db, conversation_id)
    reactions = reactions_by_message(db, [m.id for m in messages])
    return [message_to_dict(m, markers, reactions.get(m.id)) for m in messages]


def get_message_view(db: Session, message_id: int) -> dict:
    message = get_message(db, message_id)
    markers = read_markers(db, message.conversation_id)
    reactions = reactions_by_message(db, [message.id])
    return message_to_dict(message, markers, reactions.get(message.id))


def delete_message(db: Session, message_id: int, user_id: int) -> Message:
    """Soft-delete a message; only its sender may do it"""
    message = get_message(db, message_id)
    if message.sender_id != user_id:
        raise AuthorizationError("Only the sender can delete a message")
    if message.is_deleted:
        return message

    with transaction(db, "delete message"):
        message.is_deleted = True
    return message


def forward_message(
    db: Session, source_id: int, user_id: int, target_ids: Sequence[int]
) -> List[Message]:
    """Copy a message into other conversations as a new message from the caller.

    Targets the caller is not a member of are skipped, and so is any target
    whose write fails; the others still go through.
    """
    targets = list(dict.fromkeys(target_ids))
    if not 1 <= len(targets) <= MAX_FORWARD_TARGETS:
        raise ValidationError(f"Forward to between 1 and {MAX_FORWARD_TARGETS} conversations")

    source = get_message(db, source_id)
    if not is_participant(db, source.conversation_id, user_id):
        raise AuthorizationError("You are not a member of this conversation")
    if source.is_deleted:
        raise NotFoundError("Message not found")

    forwarded = []
    for target_id in targets:
        if not is_participant(db, target_id, user_id):
            logger.info("User %s is not in conversation %s, not forwarding there", user_id, target_id)
            continue
        try:
            forwarded.append(
                send_message(db, target_id, user_id, source.content, source.content_type)
            )
        except (NotFoundError, StorageError) as e:
            logger.warning("Could not forward message %s to %s: %s", source_id, target_id, e.message)
    return forwarded


def set_message_status(db: Session, message_id: int, status: int) -> Message:
    """Raise the stored status; it never goes backwards"""
    status = MessageStatus(status)
    message = get_message(db, message_id)
    if status > message.status:
        with transaction(db, "update message status"):
            message.status = int(status)
    return message


def mark_delivered(db: Session, user_id: int) -> int:
    """Promote sent messages addressed to the user to delivered"""
    conversation_ids = select(Participant.conversation_id).where(
        Participant.user_id == user_id
    )
    with transaction(db, "mark messages delivered"):
        updated = (
            db.query(Message)
            .filter(
                Message.conversation_id.in_(conversation_ids),
                Message.sender_id != user_id,
                Message.status == int(MessageStatus.SENT),
            )
            .update({Message.status: int(MessageStatus.DELIVERED)}, synchronize_session=False)
        )
    return updated
