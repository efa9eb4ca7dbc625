"""Errors raised by the store layer.

Routers never catch these one by one: ``messenger.main`` registers a single
handler that turns each kind into exactly one HTTP status.
"""
from typing import Any, Dict, Optional


class MessengerError(Exception):
    status_code = 500

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.message}
        body.update(self.extra)
        return body


class ValidationError(MessengerError):
    """Input outside semantic bounds (name length, content length...)."""

    status_code = 400


class AuthorizationError(MessengerError):
    """Caller is not a participant, or not the sender of the message."""

    status_code = 403


class NotFoundError(MessengerError):
    status_code = 404


class ConflictError(MessengerError):
    """Uniqueness violation: duplicate user name or pairwise conversation."""

    status_code = 409

    def __init__(self, message: str, conversation_id: Optional[int] = None):
        if conversation_id is not None:
            super().__init__(message, conversationId=conversation_id)
        else:
            super().__init__(message)
        self.conversation_id = conversation_id


class StorageError(MessengerError):
    status_code = 500
