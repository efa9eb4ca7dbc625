from fastapi import Request
from pydantic import ValidationError as PayloadError
from sqlalchemy.orm import Session

from messenger.core.errors import AuthorizationError, ValidationError
from messenger.db import conversation_crud
from messenger.models.schemas import PhotoUrlRequest
from messenger.storage import LocalStorageClient


def check_membership(db: Session, conversation_id: int, user_id: int) -> None:
    """Make sure the conversation exists and the user takes part in it"""
    conversation_crud.get_conversation(db, conversation_id)
    if not conversation_crud.is_participant(db, conversation_id, user_id):
        raise AuthorizationError("You are not a member of this conversation")


async def read_photo(
    request: Request, storage: LocalStorageClient, folder: str, field: str
) -> str:
    """Photo reference from either a JSON body or a multipart upload.

    JSON bodies carry a ready-made ``photoUrl``; multipart bodies carry the
    file under ``field`` and are written to storage first.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError:
            raise ValidationError("Invalid JSON body")
        try:
            photo_url = PhotoUrlRequest.model_validate(payload).photo_url
        except PayloadError:
            raise ValidationError("photoUrl must be a string")
        if not photo_url:
            raise ValidationError("photoUrl is required")
        return photo_url

    if not content_type.startswith("multipart/form-data"):
        raise ValidationError("Expected a JSON body or a multipart upload")

    form = await request.form()
    upload = form.get(field)
    if upload is None or isinstance(upload, str):
        raise ValidationError(f"{field} file is required")
    data = await upload.read()
    return storage.save(data, upload.filename or "", folder=folder)
