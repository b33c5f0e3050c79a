"""Resumable upload session creation."""

from typing import Any, Optional

import requests
from googleapiclient.errors import HttpError

from ..common.constants import CHUNK_TIMEOUT, DRIVE_UPLOAD_URL, MAX_FILE_SIZE, SUPPORTED_MIME_TYPES
from ..common.exceptions import SessionCreationError, StorageError, ValidationError
from ..common.logging import get_logger, redact_handle
from ..common.rate_limiter import SlidingWindowRateLimiter
from ..drive.folders import FolderResolver
from ..store.file_store import FileStore
from ..store.models import FileRecord, Owner, UploadRequest
from .models import UploadSession

logger = get_logger(__name__)


def validate_upload(
    file_name: str,
    file_size: int,
    mime_type: str,
    supported_mime_types: tuple[str, ...] = SUPPORTED_MIME_TYPES,
    max_file_size: int = MAX_FILE_SIZE,
) -> None:
    """Check declared file metadata before any network call.

    Raises:
        ValidationError: On a missing name, bad size or unsupported type
    """
    if not file_name or not file_name.strip():
        raise ValidationError("fileName", file_name, "File name is required")
    if file_size <= 0:
        raise ValidationError("fileSize", file_size, "File is empty")
    if file_size > max_file_size:
        raise ValidationError(
            "fileSize",
            file_size,
            f"File too large, maximum size is {max_file_size // (1024 ** 3)} GB",
        )
    if mime_type not in supported_mime_types:
        raise ValidationError("mimeType", mime_type, f"Unsupported file type: {mime_type}")


def check_session_handle(handle: Optional[str]) -> str:
    """Reject handles that are not Drive upload session URLs.

    Handles arrive from clients and are requested with the service
    account's credentials, so only Drive's upload endpoint is allowed.
    """
    if not handle or not handle.startswith(DRIVE_UPLOAD_URL + "?"):
        raise ValidationError("sessionHandle", handle, "Invalid upload session")
    return handle


class SessionInitiator:
    """Opens resumable upload sessions in the owner's ``Incoming`` folder."""

    def __init__(
        self,
        http: Any,
        folders: FolderResolver,
        store: Optional[FileStore] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        supported_mime_types: tuple[str, ...] = SUPPORTED_MIME_TYPES,
        max_file_size: int = MAX_FILE_SIZE,
        timeout: float = CHUNK_TIMEOUT,
    ) -> None:
        """Initialize session initiator.

        Args:
            http: Authorized requests session (``AuthorizedSession``)
            folders: Folder resolver for destination folders
            store: File store for idempotency keys
            rate_limiter: Per-owner upload limiter checked before each new session
            supported_mime_types: Accepted MIME types
            max_file_size: Absolute maximum file size
            timeout: Request timeout in seconds
        """
        self.http = http
        self.folders = folders
        self.store = store
        self.rate_limiter = rate_limiter
        self.supported_mime_types = tuple(supported_mime_types)
        self.max_file_size = max_file_size
        self.timeout = timeout

    def validate(self, file_name: str, file_size: int, mime_type: str) -> None:
        validate_upload(file_name, file_size, mime_type, self.supported_mime_types, self.max_file_size)

    def find_completed(self, owner: Owner, request_id: Optional[str]) -> Optional[FileRecord]:
        """Record already produced by an earlier request with this idempotency key."""
        if not request_id or self.store is None:
            return None
        request = self.store.get_upload_request(owner.id, request_id)
        if request is None or request.drive_file_id is None:
            return None
        return self.store.get_by_drive_id(request.drive_file_id)

    def create(
        self,
        owner: Owner,
        file_name: str,
        file_size: int,
        mime_type: str,
        request_id: Optional[str] = None,
    ) -> UploadSession:
        """Open a resumable upload session.

        A known, still-open ``request_id`` returns the session it created
        earlier instead of opening a second one.

        Raises:
            ValidationError: If the declared metadata is rejected
            RateLimitError: If the owner is over the upload limit
            SessionCreationError: If Drive does not hand out a session URL
        """
        self.validate(file_name, file_size, mime_type)

        if request_id and self.store is not None:
            previous = self.store.get_upload_request(owner.id, request_id)
            if previous is not None and previous.drive_file_id is None:
                if (previous.file_name, previous.file_size) != (file_name, file_size):
                    raise ValidationError(
                        "requestId", request_id, "Request ID was already used for a different file"
                    )
                logger.info(f"Reusing upload session for request {request_id}")
                return UploadSession(
                    continuation_handle=previous.session_handle,
                    file_name=file_name,
                    total_size=file_size,
                    mime_type=mime_type,
                    owner_id=owner.id,
                    request_id=request_id,
                    reused=True,
                )

        if self.rate_limiter is not None:
            self.rate_limiter.acquire(owner.id, file_size)

        try:
            folder_id = self.folders.incoming_folder(owner)
        except (HttpError, StorageError) as e:
            raise SessionCreationError(f"Could not resolve upload folder: {e}") from e

        handle = self._begin_upload(file_name, file_size, mime_type, folder_id)
        session = UploadSession(
            continuation_handle=handle,
            file_name=file_name,
            total_size=file_size,
            mime_type=mime_type,
            owner_id=owner.id,
            folder_id=folder_id,
            request_id=request_id,
        )

        if request_id and self.store is not None:
            self.store.save_upload_request(
                UploadRequest(
                    owner_id=owner.id,
                    request_id=request_id,
                    session_handle=handle,
                    file_name=file_name,
                    file_size=file_size,
                    mime_type=mime_type,
                )
            )

        logger.info(
            f"Upload session created for {file_name} ({file_size} bytes): "
            f"{redact_handle(handle)}"
        )
        return session

    def _begin_upload(self, file_name: str, file_size: int, mime_type: str, folder_id: str) -> str:
        """POST the file metadata and return the ``Location`` session URL."""
        try:
            response = self.http.post(
                f"{DRIVE_UPLOAD_URL}?uploadType=resumable&supportsAllDrives=true",
                headers={
                    "Content-Type": "application/json; charset=UTF-8",
                    "X-Upload-Content-Type": mime_type,
                    "X-Upload-Content-Length": str(file_size),
                },
                json={"name": file_name, "parents": [folder_id], "mimeType": mime_type},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise SessionCreationError(f"Failed to reach Drive: {e}") from e

        if response.status_code not in (200, 201):
            raise SessionCreationError(
                f"Drive refused upload session with status {response.status_code}",
                {"status_code": response.status_code, "body": response.text[:500]},
            )

        handle = response.headers.get("Location")
        if not handle:
            raise SessionCreationError("No upload session URL returned from Google Drive")
        return handle
