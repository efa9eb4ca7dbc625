from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from messenger.core.errors import NotFoundError, ValidationError
from messenger.db.database import get_db
from messenger.db import conversation_crud, message_crud, user_crud
from messenger.db.models import User
from messenger.models import schemas
from messenger.routers.session import get_current_user
from messenger.routers.utils import check_membership

router = APIRouter(tags=["Conversations"])


@router.get("/conversations", response_model=List[schemas.ConversationSummary])
async def get_my_conversations(
    current_user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """Get all conversations of the current user, most recent first"""
    # Fetching the list is what delivers pending messages to this user
    message_crud.mark_delivered(db, current_user.id)
    return conversation_crud.list_conversations_for_user(db, current_user.id)


@router.post(
    "/conversations",
    response_model=schemas.Conversation,
    status_code=status.HTTP_201_CREATED,
)
async def start_conversation(
    request_data: schemas.CreateConversationRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Start a one-on-one conversation with another user by name"""
    recipient = user_crud.get_user_by_name(db, request_data.recipient_name)
    if not recipient:
        raise NotFoundError("User not found")
    if recipient.id == current_user.id:
        raise ValidationError("Cannot start a conversation with yourself")

    return conversation_crud.create_conversation(
        db, None, False, [current_user.id, recipient.id]
    )


@router.get("/conversations/{conversation_id}", response_model=List[schemas.Message])
async def get_conversation_messages(
    conversation_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get the messages of a conversation and mark it as read"""
    check_membership(db, conversation_id, current_user.id)
    conversation_crud.mark_conversation_read(db, conversation_id, current_user.id)
    return message_crud.list_messages(db, conversation_id)


@router.get(
    "/conversations/{conversation_id}/members", response_model=List[schemas.User]
)
async def get_conversation_members(
    conversation_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    check_membership(db, conversation_id, current_user.id)
    return conversation_crud.list_members(db, conversation_id)
