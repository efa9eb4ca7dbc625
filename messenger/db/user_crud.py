from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from messenger.core.config import USER_NAME_MIN_LENGTH, USER_NAME_MAX_LENGTH, logger
from messenger.core.errors import ConflictError, NotFoundError, ValidationError
from messenger.db.database import transaction
from messenger.db.models import User


def validate_user_name(name: str) -> str:
    if name is None or not USER_NAME_MIN_LENGTH <= len(name) <= USER_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Name must be between {USER_NAME_MIN_LENGTH} and {USER_NAME_MAX_LENGTH} characters"
        )
    return name


def get_user(db: Session, user_id: int) -> User:
    """Get user from database by ID"""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def get_user_by_name(db: Session, name: str) -> Optional[User]:
    """Get user from database by exact name, None if nobody has it"""
    return db.query(User).filter(User.name == name).first()


def create_or_get_user(db: Session, name: str) -> Tuple[User, bool]:
    """Log in by name: return the existing user or create one.

    Returns ``(user, created)``.
    """
    validate_user_name(name)

    user = get_user_by_name(db, name)
    if user:
        return user, False

    user = User(name=name)
    try:
        with transaction(db, "create user", conflict_message="Name already taken"):
            db.add(user)
    except ConflictError:
        # Somebody registered the same name in between: that is a login too
        user = get_user_by_name(db, name)
        if not user:
            raise
        return user, False

    db.refresh(user)
    logger.info("Created user %s (%d)", user.name, user.id)
    return user, True


def rename_user(db: Session, user_id: int, new_name: str) -> User:
    """Change a user's name; names are unique system-wide"""
    validate_user_name(new_name)
    user = get_user(db, user_id)

    if user.name == new_name:
        return user

    holder = get_user_by_name(db, new_name)
    if holder and holder.id != user.id:
        raise ConflictError("Name already taken")

    with transaction(db, "rename user", conflict_message="Name already taken"):
        user.name = new_name

    db.refresh(user)
    return user


def set_user_photo(db: Session, user_id: int, photo_url: str) -> User:
    """Update user's profile photo reference"""
    user = get_user(db, user_id)
    with transaction(db, "update user photo"):
        user.photo_url = photo_url
    db.refresh(user)
    return user


def list_users(db: Session, query: str = "") -> List[User]:
    """Case-insensitive substring search on names; empty query lists everybody"""
    users = db.query(User)
    if query:
        users = users.filter(func.lower(User.name).contains(query.lower(), autoescape=True))
    return users.order_by(User.name).all()
