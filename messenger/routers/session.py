from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from messenger.db.database import get_db
from messenger.db import user_crud
from messenger.db.models import User
from messenger.models.schemas import LoginRequest, LoginResponse

router = APIRouter(tags=["Session"])


def parse_bearer(authorization: Optional[str]) -> Optional[int]:
    """Extract the user id from an "Authorization: Bearer <id>" header.

    Anything missing or malformed, or an id that is not positive, means
    the request is unauthenticated.
    """
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    try:
        user_id = int(parts[1].strip())
    except ValueError:
        return None
    return user_id if user_id > 0 else None


def get_current_user(
    authorization: Optional[str] = Header(None), db: Session = Depends(get_db)
) -> User:
    user_id = parse_bearer(authorization)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


@router.post("/session", response_model=LoginResponse, status_code=status.HTTP_201_CREATED)
async def login(request_data: LoginRequest, db: Session = Depends(get_db)):
    """Log in by name, registering the user on first login"""
    user, _ = user_crud.create_or_get_user(db, request_data.name)
    return {"identifier": user.id}
