"""Data models for owners, file records and sync logs."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FileStatus(str, Enum):
    """Processing lifecycle of a stored file."""

    NEW = "NEW"
    TRANSCRIBING = "TRANSCRIBING"
    READY = "READY"


@dataclass(frozen=True)
class Owner:
    """Authenticated user who owns uploads."""

    id: str
    email: str

    @property
    def folder_name(self) -> str:
        """Name of the owner's folder inside the Media Hub root."""
        return self.email.replace("@", "_at_")


@dataclass
class FileRecord:
    """A media file stored in Drive and tracked locally."""

    id: str
    owner_id: str
    drive_file_id: str
    name: str
    mime_type: str
    size: Optional[int] = None
    drive_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: Optional[int] = None
    status: FileStatus = FileStatus.NEW
    is_deleted: bool = False
    drive_modified_time: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def media_type(self) -> str:
        """``video``, ``audio`` or ``unknown``, from the MIME type."""
        if self.mime_type.startswith("video/"):
            return "video"
        if self.mime_type.startswith("audio/"):
            return "audio"
        return "unknown"

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation."""
        return {
            "id": self.id,
            "driveFileId": self.drive_file_id,
            "name": self.name,
            "mimeType": self.mime_type,
            "size": self.size,
            "webViewLink": self.drive_url,
            "thumbnailLink": self.thumbnail_url,
            "duration": self.duration,
            "status": self.status.value,
            "isDeleted": self.is_deleted,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass
class UploadRequest:
    """Client-supplied idempotency key bound to an upload session."""

    owner_id: str
    request_id: str
    session_handle: str
    file_name: str
    file_size: int
    mime_type: str
    drive_file_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class SyncLog:
    """Outcome of one Drive sync pass."""

    id: int
    owner_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    files_added: int = 0
    files_updated: int = 0
    files_deleted: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation."""
        return {
            "id": self.id,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "filesAdded": self.files_added,
            "filesUpdated": self.files_updated,
            "filesDeleted": self.files_deleted,
            "error": self.error,
        }
