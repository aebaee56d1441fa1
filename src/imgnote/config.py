"""Configuration module for imgnote."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from the project root .env file.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")


logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class ImgnoteConfig(BaseModel):
    """Configuration for the annotation store."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("IMGNOTE_BASE_DIR", "."))
    )
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("IMGNOTE_DATABASE_PATH", "data/db/imgnote.db")
        )
    )
    # In-memory SQLite shared through a single static connection
    in_memory_db: bool = Field(
        default_factory=lambda: _env_flag("IMGNOTE_IN_MEMORY_DB", "false")
    )
    # Stored in place of a blank note body
    empty_body: str = Field(
        default_factory=lambda: os.getenv("IMGNOTE_EMPTY_BODY", "(empty)")
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("IMGNOTE_LOG_DIR")) if os.getenv("IMGNOTE_LOG_DIR") else None
        )
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("IMGNOTE_LOG_LEVEL", "INFO")
    )
    # How long a transaction waits for the SQLite write lock
    busy_timeout_ms: int = Field(
        default_factory=lambda: int(os.getenv("IMGNOTE_BUSY_TIMEOUT_MS", "30000"))
    )

    model_config = {"validate_assignment": True}

    @model_validator(mode="after")
    def _validate_values(self) -> "ImgnoteConfig":
        if self.busy_timeout_ms <= 0:
            raise ValueError("busy_timeout_ms must be > 0")
        if not self.empty_body.strip():
            raise ValueError("empty_body cannot be blank")
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        if self.in_memory_db:
            return "sqlite://"
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = ImgnoteConfig()
