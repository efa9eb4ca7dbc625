from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from messenger.db.database import get_db
from messenger.db import message_crud, reaction_crud
from messenger.db.models import User
from messenger.models import schemas
from messenger.routers.session import get_current_user
from messenger.routers.utils import check_membership

router = APIRouter(prefix="/messages", tags=["Messages"])


@router.post("", response_model=schemas.Message, status_code=status.HTTP_201_CREATED)
async def send_message(
    request_data: schemas.SendMessageRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    message = message_crud.send_message(
        db,
        request_data.conversation_id,
        current_user.id,
        request_data.content,
        request_data.content_type,
        request_data.reply_to_id,
    )
    return message_crud.get_message_view(db, message.id)


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete one of your own messages"""
    message_crud.delete_message(db, message_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{message_id}/forward", response_model=List[schemas.Message])
async def forward_message(
    message_id: int,
    request_data: schemas.ForwardMessageRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Forward a message to conversations you are a member of"""
    forwarded = message_crud.forward_message(
        db, message_id, current_user.id, request_data.conversation_ids
    )
    return [message_crud.get_message_view(db, message.id) for message in forwarded]


@router.post("/{message_id}/reaction", response_model=List[schemas.Reaction])
async def add_reaction(
    message_id: int,
    request_data: schemas.ReactionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    reaction_crud.add_reaction(db, message_id, current_user.id, request_data.emoticon)
    return reaction_crud.list_reactions(db, message_id)


@router.delete("/{message_id}/reaction", status_code=status.HTTP_204_NO_CONTENT)
async def remove_reaction(
    message_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    message = message_crud.get_message(db, message_id)
    check_membership(db, message.conversation_id, current_user.id)
    reaction_crud.remove_reaction(db, message_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
