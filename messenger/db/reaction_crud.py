from collections import defaultdict
from typing import Dict, List, Sequence

from sqlalchemy.orm import Session

from messenger.core.config import MAX_EMOTICON_LENGTH
from messenger.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from messenger.db.database import transaction
from messenger.db.models import Message, Participant, Reaction, User


def _reactable_message(db: Session, message_id: int, user_id: int) -> Message:
    message = db.query(Message).filter(Message.id == message_id).first()
    if not message or message.is_deleted:
        raise NotFoundError("Message not found")
    member = (
        db.query(Participant)
        .filter(
            Participant.conversation_id == message.conversation_id,
            Participant.user_id == user_id,
        )
        .first()
    )
    if not member:
        raise AuthorizationError("You are not a member of this conversation")
    return message


def add_reaction(db: Session, message_id: int, user_id: int, emoticon: str) -> Reaction:
    """Set the user's reaction on a message, replacing any earlier one"""
    if not emoticon or len(emoticon) > MAX_EMOTICON_LENGTH:
        raise ValidationError("Invalid emoticon")
    _reactable_message(db, message_id, user_id)

    reaction = db.get(Reaction, (message_id, user_id))
    try:
        with transaction(db, "add reaction", conflict_message="Reaction already exists"):
            if reaction:
                reaction.emoticon = emoticon
            else:
                reaction = Reaction(message_id=message_id, user_id=user_id, emoticon=emoticon)
                db.add(reaction)
    except ConflictError:
        # Another request reacted first: replace its emoticon
        reaction = db.get(Reaction, (message_id, user_id))
        if not reaction:
            raise
        with transaction(db, "add reaction"):
            reaction.emoticon = emoticon
    return reaction


def remove_reaction(db: Session, message_id: int, user_id: int) -> bool:
    """Drop the user's reaction; False if there was none"""
    with transaction(db, "remove reaction"):
        deleted = (
            db.query(Reaction)
            .filter(Reaction.message_id == message_id, Reaction.user_id == user_id)
            .delete(synchronize_session=False)
        )
    return deleted > 0


def list_reactions(db: Session, message_id: int) -> List[dict]:
    return reactions_by_message(db, [message_id]).get(message_id, [])


def reactions_by_message(db: Session, message_ids: Sequence[int]) -> Dict[int, List[dict]]:
    """Reactions of several messages at once, keyed by message id"""
    if not message_ids:
        return {}
    rows = (
        db.query(Reaction.message_id, Reaction.user_id, User.name, Reaction.emoticon)
        .join(User, User.id == Reaction.user_id)
        .filter(Reaction.message_id.in_(message_ids))
        .order_by(Reaction.message_id, Reaction.user_id)
        .all()
    )
    result = defaultdict(list)
    for message_id, user_id, reactor_name, emoticon in rows:
        result[message_id].append(
            {"user_id": user_id, "reactor_name": reactor_name, "emoticon": emoticon}
        )
    return dict(result)
