import time
import uuid
from pathlib import Path
from typing import Optional

from messenger.core.config import ALLOWED_PHOTO_EXTENSIONS, settings, logger
from messenger.core.errors import StorageError, ValidationError


class LocalStorageClient:
    """Stores uploaded photos on the local disk and hands back their URL"""

    def __init__(self, base_path: Optional[str] = None, url_prefix: Optional[str] = None,
                 max_size: Optional[int] = None):
        self.base_path = Path(base_path or settings.MEDIA_ROOT).absolute()
        self.url_prefix = url_prefix or settings.MEDIA_URL_PREFIX
        self.max_size = max_size or settings.MAX_UPLOAD_SIZE
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info("Local storage initialized at: %s", self.base_path)

    def save(self, data: bytes, name_hint: str, folder: str = "photos") -> str:
        """
        Write a file and return the URL it will be served from.

        Args:
            data: Raw file contents
            name_hint: Original file name, only its extension is kept
            folder: Sub-directory, e.g. 'users' or 'groups'

        Returns:
            URL of the stored file, stored verbatim by the caller
        """
        if not data:
            raise ValidationError("Empty file")
        if len(data) > self.max_size:
            raise ValidationError(f"File size exceeds maximum allowed size of {self.max_size} bytes")

        file_extension = name_hint.rsplit(".", 1)[-1].lower() if name_hint and "." in name_hint else ""
        if file_extension not in ALLOWED_PHOTO_EXTENSIONS:
            raise ValidationError("Unsupported photo type")

        relative_path = f"{folder}/{int(time.time())}_{uuid.uuid4().hex}.{file_extension}"
        storage_path = self.base_path / relative_path
        try:
            storage_path.parent.mkdir(parents=True, exist_ok=True)
            storage_path.write_bytes(data)
        except OSError as e:
            logger.error("Error saving file %s: %s", storage_path, e)
            raise StorageError("Could not save file") from e

        return f"{self.url_prefix}{relative_path}"


_storage_client: Optional[LocalStorageClient] = None


def get_storage() -> LocalStorageClient:
    global _storage_client
    if _storage_client is None:
        _storage_client = LocalStorageClient()
    return _storage_client
