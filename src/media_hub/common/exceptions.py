"""Custom exception hierarchy.

Every error carries a ``user_message`` (what the person uploading should be
told) and a ``status_code`` used by the HTTP layer.
"""

from typing import Any, Optional


class MediaHubError(Exception):
    """Base exception for all media-hub errors."""

    status_code = 500
    user_message = "Something went wrong"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ValidationError(MediaHubError):
    """Bad input; fails fast and is never retried."""

    status_code = 400

    def __init__(self, field: str, value: Any, message: str) -> None:
        super().__init__(f"Validation error for {field}: {message}", {"field": field, "value": value})
        self.field = field
        self.value = value
        self.user_message = message


class AuthenticationError(MediaHubError):
    """Request is not associated with a known owner."""

    status_code = 401
    user_message = "Please sign in"


class NotFoundError(MediaHubError):
    """Requested record does not exist or is not the caller's."""

    status_code = 404
    user_message = "File not found"


class RateLimitError(MediaHubError):
    """Per-owner upload limit exceeded."""

    status_code = 429
    user_message = "Too many uploads, please retry later"

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message, {"retry_after": retry_after})
        self.retry_after = retry_after


class SessionCreationError(MediaHubError):
    """The storage backend refused to open an upload session."""

    status_code = 502
    user_message = "Could not start the upload, please try again"


class TransientTransportError(MediaHubError):
    """Timeout, connection failure or 5xx while transmitting a chunk."""

    status_code = 503
    user_message = "Network error, please retry"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        details = {"status_code": status_code} if status_code else {}
        super().__init__(message, details)
        self.backend_status = status_code


class ProtocolError(MediaHubError):
    """The backend answered with a status the upload protocol does not allow."""

    status_code = 502
    user_message = "The storage service returned an unexpected response"

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = "") -> None:
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if body:
            details["body"] = body[:500]
        super().__init__(message, details)
        self.backend_status = status_code
        self.body = body


class ReconciliationError(MediaHubError):
    """The upload probably succeeded but no backend file could be located."""

    status_code = 502
    user_message = "Upload succeeded but could not be confirmed, check your files list"


class IncompleteUploadError(MediaHubError):
    """Confirmation was requested for a session that still expects bytes."""

    status_code = 409
    user_message = "Upload is incomplete, resume it to finish"

    def __init__(self, message: str, bytes_confirmed: int) -> None:
        super().__init__(message, {"bytes_confirmed": bytes_confirmed})
        self.bytes_confirmed = bytes_confirmed


class ManualUploadRequiredError(MediaHubError):
    """File is above the automatic upload limit."""

    status_code = 413
    user_message = "File is too large for automatic upload, add it through Google Drive directly"


class UploadCancelledError(MediaHubError):
    """The caller aborted the transfer."""

    status_code = 499
    user_message = "Upload cancelled"


class StorageError(MediaHubError):
    """Drive or database failure outside the upload pipeline."""


class ConfigError(MediaHubError):
    """Configuration error."""
