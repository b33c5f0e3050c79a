"""Application settings."""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..common import constants


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MEDIA_HUB_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Paths
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".media-hub",
        description="Data directory for the database",
    )

    # Google Drive
    service_account_key: Optional[str] = Field(
        default=None,
        description="Service account key as JSON or base64-encoded JSON",
    )
    service_account_file: Optional[Path] = Field(
        default=None,
        description="Path to a service account key file",
    )
    shared_drive_id: Optional[str] = Field(
        default=None,
        description="Shared Drive holding the Media Hub folder tree",
    )
    root_folder_id: Optional[str] = Field(
        default=None,
        description="Media Hub root folder ID (searched or created when unset)",
    )

    # Upload limits
    instant_limit: int = Field(
        default=constants.INSTANT_LIMIT,
        description="Largest file uploaded in a single request",
    )
    medium_limit: int = Field(
        default=constants.MEDIUM_LIMIT,
        description="Largest file uploaded through a resumable session",
    )
    max_file_size: int = Field(
        default=constants.MAX_FILE_SIZE,
        description="Absolute maximum accepted file size",
    )
    chunk_size: int = Field(
        default=constants.DEFAULT_CHUNK_SIZE,
        description="Resumable upload chunk size in bytes",
    )
    supported_mime_types: list[str] = Field(
        default_factory=lambda: list(constants.SUPPORTED_MIME_TYPES),
        description="MIME types accepted for upload",
    )

    # Transport
    chunk_timeout: float = Field(
        default=constants.CHUNK_TIMEOUT,
        description="Per-chunk request timeout in seconds",
    )
    max_attempts: int = Field(
        default=constants.MAX_ATTEMPTS,
        description="Attempts per chunk before the upload fails",
    )
    retry_base_delay: float = Field(
        default=constants.RETRY_BASE_DELAY,
        description="Initial retry delay in seconds",
    )
    retry_max_delay: float = Field(
        default=constants.RETRY_MAX_DELAY,
        description="Maximum retry delay in seconds",
    )

    # Rate limiting
    upload_window_seconds: int = Field(
        default=constants.UPLOAD_WINDOW_SECONDS,
        description="Sliding window for upload rate limiting",
    )
    upload_max_requests: int = Field(
        default=constants.UPLOAD_MAX_REQUESTS,
        description="Uploads allowed per owner per window",
    )
    upload_max_bytes: int = Field(
        default=constants.UPLOAD_MAX_BYTES,
        description="Bytes allowed per owner per window",
    )

    # Server
    api_tokens: dict[str, str] = Field(
        default_factory=dict,
        description="Bearer token to owner email mapping",
    )
    host: str = Field(default="127.0.0.1", description="Server bind address")
    port: int = Field(default=8000, description="Server port")

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_file: Optional[Path] = Field(
        default=None,
        description="Optional log file path",
    )

    @field_validator("chunk_size")
    @classmethod
    def _align_chunk_size(cls, value: int) -> int:
        # Drive rejects non-final chunks that are not multiples of 256 KiB
        aligned = (value // constants.CHUNK_ALIGNMENT) * constants.CHUNK_ALIGNMENT
        return max(aligned, constants.CHUNK_ALIGNMENT)

    def __init__(self, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def db_path(self) -> Path:
        """Path to SQLite database."""
        return self.data_dir / constants.DB_NAME


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset global settings instance."""
    global _settings
    _settings = None
