from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import and_, desc, func
from sqlalchemy.orm import Session, aliased

from messenger.core.config import GROUP_NAME_MIN_LENGTH, GROUP_NAME_MAX_LENGTH, logger
from messenger.core.errors import (
    ConflictError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from messenger.db.database import transaction, utcnow
from messenger.db.models import Conversation, Message, Participant, User, make_pair_key
from messenger.db.status import derive_status


def _dedupe(members: Sequence[int]) -> List[int]:
    seen = set()
    unique = []
    for member_id in members:
        if member_id not in seen:
            seen.add(member_id)
            unique.append(member_id)
    return unique


def validate_group_name(name: str) -> str:
    if name is None or not GROUP_NAME_MIN_LENGTH <= len(name) <= GROUP_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Group name must be between {GROUP_NAME_MIN_LENGTH} and {GROUP_NAME_MAX_LENGTH} characters"
        )
    return name


def get_conversation(db: Session, conversation_id: int) -> Conversation:
    """Get a conversation by ID"""
    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if not conversation:
        raise NotFoundError("Conversation not found")
    return conversation


def get_group(db: Session, group_id: int) -> Conversation:
    """Get a conversation by ID and make sure it is a group"""
    conversation = get_conversation(db, group_id)
    if not conversation.is_group:
        raise ValidationError("Only group conversations can be changed this way")
    return conversation


def get_participant(db: Session, conversation_id: int, user_id: int) -> Optional[Participant]:
    return (
        db.query(Participant)
        .filter(
            Participant.conversation_id == conversation_id,
            Participant.user_id == user_id,
        )
        .first()
    )


def is_participant(db: Session, conversation_id: int, user_id: int) -> bool:
    """Membership test used before any conversation scoped operation"""
    return get_participant(db, conversation_id, user_id) is not None


def find_pairwise_conversation(db: Session, user_a: int, user_b: int) -> Optional[int]:
    """ID of the one-on-one conversation between two users, in either order"""
    if user_a == user_b:
        return None
    first = aliased(Participant)
    second = aliased(Participant)
    row = (
        db.query(Conversation.id)
        .join(first, first.conversation_id == Conversation.id)
        .join(second, second.conversation_id == Conversation.id)
        .filter(
            Conversation.is_group.is_(False),
            first.user_id == user_a,
            second.user_id == user_b,
        )
        .order_by(desc(Conversation.last_message_at), desc(Conversation.id))
        .first()
    )
    return row[0] if row else None


def create_conversation(
    db: Session, name: Optional[str], is_group: bool, members: Sequence[int]
) -> Conversation:
    """Create a conversation together with its initial participants.

    Pairwise conversations need exactly two distinct members and may exist
    only once per pair. The conversation row and every participant row are
    committed in a single transaction.
    """
    members = _dedupe(members)

    if is_group:
        validate_group_name(name)
        if not members:
            raise ValidationError("A group needs at least one member")
        pair_key = None
    else:
        if len(members) != 2:
            raise ValidationError("A one-on-one conversation needs exactly two different users")
        existing_id = find_pairwise_conversation(db, members[0], members[1])
        if existing_id:
            raise ConflictError("Conversation already exists", conversation_id=existing_id)
        pair_key = make_pair_key(members[0], members[1])
        name = None

    found = {row[0] for row in db.query(User.id).filter(User.id.in_(members)).all()}
    missing = [member_id for member_id in members if member_id not in found]
    if missing:
        raise NotFoundError(f"Users not found: {missing}")

    now = utcnow()
    conversation = Conversation(
        name=name, is_group=is_group, last_message_at=now, pair_key=pair_key
    )
    try:
        with transaction(db, "create conversation", conflict_message="Conversation already exists"):
            db.add(conversation)
            db.flush()
            for member_id in members:
                db.add(
                    Participant(
                        conversation_id=conversation.id, user_id=member_id, joined_at=now
                    )
                )
    except ConflictError:
        # Lost a race against another writer for the same pair
        existing_id = None
        if not is_group:
            existing_id = find_pairwise_conversation(db, members[0], members[1])
        if existing_id:
            raise ConflictError("Conversation already exists", conversation_id=existing_id)
        raise StorageError("Could not create conversation")

    db.refresh(conversation)
    logger.info(
        "Created %s conversation %d with members %s",
        "group" if is_group else "pairwise",
        conversation.id,
        members,
    )
    return conversation


def list_members(db: Session, conversation_id: int) -> List[User]:
    """Get the users taking part in a conversation"""
    return (
        db.query(User)
        .join(Participant, Participant.user_id == User.id)
        .filter(Participant.conversation_id == conversation_id)
        .order_by(User.id)
        .all()
    )


def read_markers(db: Session, conversation_id: int) -> Dict[int, Optional[datetime]]:
    """Map participant id -> last read timestamp"""
    rows = (
        db.query(Participant.user_id, Participant.last_read_at)
        .filter(Participant.conversation_id == conversation_id)
        .all()
    )
    return {user_id: last_read_at for user_id, last_read_at in rows}


def other_markers(markers: Dict[int, Optional[datetime]], sender_id: int) -> List[Optional[datetime]]:
    return [marker for user_id, marker in markers.items() if user_id != sender_id]


def _unread_count(db: Session, conversation_id: int, user_id: int, last_read_at) -> int:
    query = db.query(func.count(Message.id)).filter(
        Message.conversation_id == conversation_id,
        Message.sender_id != user_id,
    )
    if last_read_at is not None:
        query = query.filter(Message.created_at > last_read_at)
    return query.scalar() or 0


def list_conversations_for_user(db: Session, user_id: int) -> List[dict]:
    """Get all conversations of a user, most recently active first"""
    rows = (
        db.query(Conversation, Participant.last_read_at)
        .join(Participant, Participant.conversation_id == Conversation.id)
        .filter(Participant.user_id == user_id)
        .order_by(desc(Conversation.last_message_at), desc(Conversation.id))
        .all()
    )

    result = []
    for conversation, last_read_at in rows:
        if conversation.is_group:
            name = conversation.name or ""
            photo_url = conversation.photo_url
        else:
            # Name and photo come from the other participant
            other_user = (
                db.query(User)
                .join(Participant, Participant.user_id == User.id)
                .filter(
                    and_(
                        Participant.conversation_id == conversation.id,
                        User.id != user_id,
                    )
                )
                .first()
            )
            if not other_user:
                other_user = db.query(User).filter(User.id == user_id).first()
            name = other_user.name
            photo_url = other_user.photo_url

        latest = (
            db.query(Message)
            .filter(Message.conversation_id == conversation.id)
            .order_by(desc(Message.created_at), desc(Message.id))
            .first()
        )

        entry = {
            "id": conversation.id,
            "name": name,
            "is_group": conversation.is_group,
            "photo_url": photo_url,
            "last_message_at": conversation.last_message_at,
            "latest_message_preview": "",
            "latest_message_sender_id": None,
            "latest_message_status": None,
            "latest_message_deleted": False,
            "unread_count": _unread_count(db, conversation.id, user_id, last_read_at),
        }
        if latest:
            markers = read_markers(db, conversation.id)
            entry.update(
                {
                    "latest_message_preview": "" if latest.is_deleted else latest.content,
                    "latest_message_sender_id": latest.sender_id,
                    "latest_message_status": derive_status(
                        latest.status,
                        latest.created_at,
                        other_markers(markers, latest.sender_id),
                    ),
                    "latest_message_deleted": latest.is_deleted,
                }
            )
        result.append(entry)

    return result


def mark_conversation_read(db: Session, conversation_id: int, user_id: int) -> Participant:
    """Move the user's last read marker to now"""
    participant = get_participant(db, conversation_id, user_id)
    if not participant:
        raise NotFoundError("Conversation not found")
    with transaction(db, "update last read marker"):
        participant.last_read_at = utcnow()
    return participant


def add_member(db: Session, group_id: int, user_id: int) -> bool:
    """Add a user to a group; False when they already were a member"""
    get_group(db, group_id)
    if not db.query(User.id).filter(User.id == user_id).first():
        raise NotFoundError("User not found")
    if is_participant(db, group_id, user_id):
        return False

    with transaction(db, "add group member"):
        db.add(Participant(conversation_id=group_id, user_id=user_id, joined_at=utcnow()))
    return True


def add_members(db: Session, group_id: int, user_ids: Sequence[int]) -> List[int]:
    """Add several users to a group, skipping the ones that fail.

    Returns the ids that were actually added.
    """
    get_group(db, group_id)

    added = []
    for user_id in _dedupe(user_ids):
        try:
            if add_member(db, group_id, user_id):
                added.append(user_id)
        except (NotFoundError, StorageError) as e:
            logger.warning("Skipping member %s for group %s: %s", user_id, group_id, e.message)
    return added


def remove_member(db: Session, group_id: int, user_id: int) -> None:
    """Remove a user from a group (leaving it)"""
    get_group(db, group_id)
    participant = get_participant(db, group_id, user_id)
    if not participant:
        raise NotFoundError("User is not a member of this group")
    with transaction(db, "remove group member"):
        db.delete(participant)


def rename_group(db: Session, group_id: int, name: str) -> Conversation:
    validate_group_name(name)
    group = get_group(db, group_id)
    with transaction(db, "rename group"):
        group.name = name
    db.refresh(group)
    return group


def set_group_photo(db: Session, group_id: int, photo_url: str) -> Conversation:
    group = get_group(db, group_id)
    with transaction(db, "update group photo"):
        group.photo_url = photo_url
    db.refresh(group)
    return group


def reconcile_pairwise_duplicates(db: Session) -> int:
    """Collapse duplicate one-on-one conversations left by older data.

    For every pair of users keeps the most recently active conversation
    (highest id on ties), deletes the rest and backfills ``pair_key``.
    Returns how many conversations were deleted.
    """
    rows = (
        db.query(Conversation, Participant.user_id)
        .join(Participant, Participant.conversation_id == Conversation.id)
        .filter(Conversation.is_group.is_(False))
        .all()
    )

    members = defaultdict(set)
    conversations = {}
    for conversation, user_id in rows:
        members[conversation.id].add(user_id)
        conversations[conversation.id] = conversation

    by_pair = defaultdict(list)
    for conversation_id, user_ids in members.items():
        if len(user_ids) == 2:
            by_pair[make_pair_key(*user_ids)].append(conversations[conversation_id])

    removed = 0
    survivors = []
    with transaction(db, "reconcile pairwise conversations"):
        for pair_key, candidates in by_pair.items():
            candidates.sort(
                key=lambda c: (c.last_message_at or datetime.min, c.id), reverse=True
            )
            keep, duplicates = candidates[0], candidates[1:]
            for duplicate in duplicates:
                logger.warning(
                    "Removing duplicate conversation %d for pair %s (keeping %d)",
                    duplicate.id,
                    pair_key,
                    keep.id,
                )
                db.delete(duplicate)
                removed += 1
            survivors.append((keep, pair_key))
        db.flush()
        for keep, pair_key in survivors:
            if keep.pair_key != pair_key:
                keep.pair_key = pair_key

    return removed
