"""Configuration module for Juan Note."""

import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from juan_note import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: survives reinstalls, lives alongside the database
_USER_ENV = Path.home() / ".juan-note" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

# Origins used by the desktop shell's webview and dev server
_DEFAULT_CORS_ORIGINS = (
    "http://localhost:1420,http://127.0.0.1:1420,tauri://localhost"
)


def _parse_csv(value: Optional[str]) -> List[str]:
    """Split a comma-separated environment value into a clean list."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class JuanNoteConfig(BaseModel):
    """Configuration for the note store and its servers."""

    # Base directory used to resolve relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("JUAN_NOTE_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv(
                "JUAN_NOTE_DATABASE_PATH",
                str(Path.home() / ".juan-note" / "notes.db"),
            )
        )
    )
    # Page cache size in KB, applied as a negative PRAGMA cache_size
    sqlite_cache_size_kb: int = Field(
        default_factory=lambda: int(
            os.getenv("JUAN_NOTE_SQLITE_CACHE_SIZE_KB", "64000")
        )
    )
    # HTTP facade configuration
    http_host: str = Field(
        default_factory=lambda: os.getenv("JUAN_NOTE_HTTP_HOST", "127.0.0.1")
    )
    http_port: int = Field(
        default_factory=lambda: int(os.getenv("JUAN_NOTE_HTTP_PORT", "3001"))
    )
    # Upper bound of the port probe range when http_port is taken
    http_port_max: int = Field(
        default_factory=lambda: int(os.getenv("JUAN_NOTE_HTTP_PORT_MAX", "3100"))
    )
    cors_origins: List[str] = Field(
        default_factory=lambda: _parse_csv(
            os.getenv("JUAN_NOTE_CORS_ORIGINS", _DEFAULT_CORS_ORIGINS)
        )
    )
    # Search configuration
    search_default_limit: int = Field(
        default_factory=lambda: int(
            os.getenv("JUAN_NOTE_SEARCH_DEFAULT_LIMIT", "50")
        )
    )
    search_max_limit: int = Field(
        default_factory=lambda: int(os.getenv("JUAN_NOTE_SEARCH_MAX_LIMIT", "100"))
    )
    # Server identity
    server_name: str = Field(default=os.getenv("JUAN_NOTE_SERVER_NAME", "juan-note"))
    server_version: str = Field(default=__version__)
    # Logging configuration
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("JUAN_NOTE_LOG_DIR"))
            if os.getenv("JUAN_NOTE_LOG_DIR")
            else None
        )
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("JUAN_NOTE_LOG_LEVEL", "INFO")
    )

    @model_validator(mode="after")
    def _validate_limits(self) -> "JuanNoteConfig":
        """Validate search limits and the HTTP port range."""
        if self.search_default_limit < 1 or self.search_max_limit < 1:
            raise ValueError("search limits must be >= 1")
        if self.search_default_limit > self.search_max_limit:
            raise ValueError(
                "search_default_limit cannot exceed search_max_limit"
            )
        if self.http_port < 1 or self.http_port_max > 65535:
            raise ValueError("http ports must be within 1-65535")
        if self.http_port > self.http_port_max:
            raise ValueError("http_port cannot exceed http_port_max")
        if "*" in self.cors_origins:
            logger.warning(
                "CORS is configured to accept any origin; the HTTP facade has "
                "no authentication, so any local web page can read notes."
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = JuanNoteConfig()
