from datetime import datetime
from typing import Iterable, Optional

from messenger.db.models import MessageStatus


def derive_status(
    stored: int, created_at: datetime, other_read_markers: Iterable[Optional[datetime]]
) -> MessageStatus:
    """Status of a message as seen right now.

    A message is read once every participant other than its sender has a
    last-read marker at or after its creation time, or when it was already
    stored as read. Otherwise the stored status is reported unchanged, so
    the result is never lower than what is stored.
    """
    stored = MessageStatus(stored)
    if stored >= MessageStatus.READ:
        return MessageStatus.READ
    if all(marker is not None and marker >= created_at for marker in other_read_markers):
        return MessageStatus.READ
    return stored
