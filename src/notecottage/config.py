"""Configuration module for NoteCottage."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notecottage import __version__
from notecottage.exceptions import ConfigurationError

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

logger = logging.getLogger(__name__)

# Fixed id of the legacy "Uncategorized" folder created with the schema
LEGACY_DEFAULT_FOLDER_ID = 1


class NoteCottageConfig(BaseModel):
    """Configuration for the NoteCottage core."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTECOTTAGE_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTECOTTAGE_DATABASE_PATH", "data/notecottage.db")
        )
    )
    # Full SQLAlchemy URL; takes precedence over database_path when set
    database_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("NOTECOTTAGE_DATABASE_URL") or None
    )
    # Logging configuration
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTECOTTAGE_LOG_DIR"))
            if os.getenv("NOTECOTTAGE_LOG_DIR")
            else None
        )
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("NOTECOTTAGE_LOG_LEVEL", "INFO")
    )
    # Upper bound on parent-pointer walks; the folder graph is only kept
    # acyclic by application logic, so walks must terminate regardless.
    max_folder_depth: int = Field(
        default_factory=lambda: int(os.getenv("NOTECOTTAGE_MAX_FOLDER_DEPTH", "256"))
    )
    # Characters of content shown in note listings
    preview_length: int = Field(
        default_factory=lambda: int(os.getenv("NOTECOTTAGE_PREVIEW_LENGTH", "100"))
    )
    default_folder_icon: str = Field(
        default_factory=lambda: os.getenv("NOTECOTTAGE_DEFAULT_FOLDER_ICON", "\U0001F4C1")
    )
    search_limit: int = Field(
        default_factory=lambda: int(os.getenv("NOTECOTTAGE_SEARCH_LIMIT", "200"))
    )
    app_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_limits(self) -> "NoteCottageConfig":
        """Reject limits that would break tree walks or listings."""
        if self.max_folder_depth < 1:
            raise ValueError("max_folder_depth must be >= 1")
        if self.preview_length < 0:
            raise ValueError("preview_length must be >= 0")
        if self.search_limit < 1:
            raise ValueError("search_limit must be >= 1")
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        if self.database_url:
            return self.database_url
        db_path = self.get_absolute_path(self.database_path)
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create database directory {db_path.parent}: {e}",
                config_key="database_path",
            ) from e
        return f"sqlite:///{db_path}"


# Create a global config instance
config = NoteCottageConfig()
