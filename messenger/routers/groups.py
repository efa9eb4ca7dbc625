from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from messenger.core.config import GROUP_MIN_INVITEES
from messenger.core.errors import ValidationError
from messenger.db.database import get_db
from messenger.db import conversation_crud
from messenger.db.models import User
from messenger.models import schemas
from messenger.routers.session import get_current_user
from messenger.routers.utils import check_membership, read_photo
from messenger.storage import LocalStorageClient, get_storage

router = APIRouter(prefix="/groups", tags=["Groups"])


@router.post("", response_model=schemas.GroupCreated, status_code=status.HTTP_201_CREATED)
async def create_group(
    request_data: schemas.CreateGroupRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a group with the current user and at least two other members"""
    invitees = {member_id for member_id in request_data.initial_members if member_id != current_user.id}
    if len(invitees) < GROUP_MIN_INVITEES:
        raise ValidationError(f"A group needs at least {GROUP_MIN_INVITEES} other members")

    group = conversation_crud.create_conversation(
        db, request_data.name, True, [current_user.id] + request_data.initial_members
    )
    return {"group_id": group.id}


@router.post("/{group_id}/members", response_model=schemas.MembersAdded)
async def add_to_group(
    group_id: int,
    request_data: schemas.UserIdsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Members can add other users; unknown users are skipped"""
    check_membership(db, group_id, current_user.id)
    added = conversation_crud.add_members(db, group_id, request_data.user_ids)
    return {"added": added}


@router.delete("/{group_id}/me", status_code=status.HTTP_204_NO_CONTENT)
async def leave_group(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    conversation_crud.remove_member(db, group_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{group_id}/name", response_model=schemas.Conversation)
async def set_group_name(
    group_id: int,
    request_data: schemas.GroupNameRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    check_membership(db, group_id, current_user.id)
    return conversation_crud.rename_group(db, group_id, request_data.new_name)


@router.put("/{group_id}/photo", response_model=schemas.PhotoUrlResponse)
async def set_group_photo(
    group_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: LocalStorageClient = Depends(get_storage),
):
    """Set the group photo from a JSON photoUrl or a multipart photo file"""
    check_membership(db, group_id, current_user.id)
    conversation_crud.get_group(db, group_id)
    photo_url = await read_photo(request, storage, folder=f"groups/group_{group_id}", field="photo")
    group = conversation_crud.set_group_photo(db, group_id, photo_url)
    return {"photo_url": group.photo_url}
