from typing import List

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from messenger.db.database import get_db
from messenger.db import user_crud
from messenger.db.models import User
from messenger.models import schemas
from messenger.routers.session import get_current_user
from messenger.routers.utils import read_photo
from messenger.storage import LocalStorageClient, get_storage

router = APIRouter(tags=["Users"])


@router.get("/me", response_model=schemas.User)
async def get_my_profile(current_user: User = Depends(get_current_user)):
    return current_user


@router.get("/users", response_model=List[schemas.User])
async def search_users(
    q: str = Query("", description="Part of the name, case-insensitive"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return user_crud.list_users(db, q)


@router.put("/user/name", response_model=schemas.User)
async def set_my_user_name(
    request_data: schemas.UpdateUserNameRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return user_crud.rename_user(db, current_user.id, request_data.new_name)


@router.put("/user/photo", response_model=schemas.PhotoUrlResponse)
async def set_my_photo(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: LocalStorageClient = Depends(get_storage),
):
    """Set the profile photo from a JSON photoUrl or a multipart newPhoto file"""
    photo_url = await read_photo(request, storage, folder=f"users/user_{current_user.id}", field="newPhoto")
    user = user_crud.set_user_photo(db, current_user.id, photo_url)
    return {"photo_url": user.photo_url}
