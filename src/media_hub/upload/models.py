"""Data models for upload sessions and progress."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..store.models import FileRecord


class UploadTier(str, Enum):
    """How a file of a given size is uploaded."""

    INSTANT = "instant"  # whole file in one request, no session
    CHUNKED = "chunked"  # resumable session
    MANUAL = "manual"  # too large; user uploads through Drive directly


class UploadState(str, Enum):
    """States of one upload attempt."""

    IDLE = "idle"
    SESSION_CREATED = "session_created"
    TRANSMITTING = "transmitting"
    RETRY_WAIT = "retry_wait"
    BACKEND_COMPLETE = "backend_complete"
    RECONCILED = "reconciled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadState.RECONCILED, UploadState.FAILED)


@dataclass
class UploadSession:
    """One in-progress resumable transfer.

    ``continuation_handle`` is the session URL issued by Drive; whoever holds
    it can write to the upload. ``bytes_confirmed`` only moves when Drive
    acknowledges bytes, through ``ProgressTracker``.
    """

    continuation_handle: str
    file_name: str
    total_size: int
    mime_type: str
    owner_id: Optional[str] = None
    folder_id: Optional[str] = None
    request_id: Optional[str] = None
    bytes_confirmed: int = 0
    reused: bool = False  # handle came from an earlier request with the same request_id

    @property
    def is_complete(self) -> bool:
        return self.bytes_confirmed >= self.total_size


@dataclass(frozen=True)
class ChunkResult:
    """Interpreted backend response to one chunk PUT or status probe."""

    complete: bool
    bytes_confirmed: int
    file: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class ProgressEvent:
    """One element of the progress sequence produced by an upload."""

    state: UploadState
    bytes_confirmed: int
    total_size: int
    attempt: int = 0
    message: str = ""
    record: Optional[FileRecord] = None
    session_handle: Optional[str] = None  # set on FAILED so the caller can resume

    @property
    def percentage(self) -> float:
        if self.total_size <= 0:
            return 100.0 if self.state == UploadState.RECONCILED else 0.0
        return max(0.0, min(100.0, self.bytes_confirmed / self.total_size * 100))


@dataclass
class ReconcileResult:
    """Record produced (or found) by the completion reconciler."""

    record: FileRecord
    created: bool
    ambiguous: bool = False
    candidates: list[str] = field(default_factory=list)
