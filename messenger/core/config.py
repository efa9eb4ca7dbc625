import os
import logging
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load environment variables
load_dotenv()


class Settings(BaseSettings):
    DATABASE_URL: str = Field(default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///./messenger.db"))
    SQL_ECHO: bool = False

    MEDIA_ROOT: str = Field(default_factory=lambda: os.getenv("MEDIA_ROOT", "media_files"))
    MEDIA_URL_PREFIX: str = Field(default_factory=lambda: os.getenv("MEDIA_URL_PREFIX", "/media/"))
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10 MB

    CORS_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# API Settings
PROJECT_NAME = "Messenger API"

# User names
USER_NAME_MIN_LENGTH = 3
USER_NAME_MAX_LENGTH = 16

# Group names
GROUP_NAME_MIN_LENGTH = 3
GROUP_NAME_MAX_LENGTH = 20
GROUP_MIN_INVITEES = 2  # creator + 2 others

# Message content
CONTENT_TYPE_TEXT = "text"
CONTENT_TYPE_PHOTO = "photo"
MAX_TEXT_LENGTH = 200
MAX_PHOTO_LENGTH = 5_000_000
MAX_EMOTICON_LENGTH = 16
MAX_FORWARD_TARGETS = 10

# Photo uploads
ALLOWED_PHOTO_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}
