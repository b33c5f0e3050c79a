"""Chunk transmission over a resumable upload session."""

import re
from typing import Any, Optional

import requests

from ..common.constants import CHUNK_TIMEOUT, RESUME_INCOMPLETE
from ..common.exceptions import ProtocolError, TransientTransportError, ValidationError
from ..common.logging import get_logger
from .models import ChunkResult, UploadSession

logger = get_logger(__name__)

_RANGE_RE = re.compile(r"bytes=(\d+)-(\d+)")
_CONTENT_RANGE_RE = re.compile(r"bytes (\d+)-(\d+)/(\d+)")
_STATUS_RANGE_RE = re.compile(r"bytes \*/(\d+)")

TRANSIENT_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


def content_range(start: int, end: int, total: int) -> str:
    """``Content-Range`` value for bytes ``[start, end)`` of ``total``."""
    return f"bytes {start}-{end - 1}/{total}"


def parse_range_header(value: Optional[str]) -> int:
    """Number of bytes the backend holds, from a 308 ``Range`` header.

    ``bytes=0-N`` means ``N + 1`` bytes were persisted; a missing header
    means nothing was.
    """
    if not value:
        return 0
    match = _RANGE_RE.search(value)
    if not match:
        raise ProtocolError(f"Malformed Range header: {value!r}", RESUME_INCOMPLETE)
    return int(match.group(2)) + 1


def parse_content_range(value: Optional[str]) -> tuple[Optional[int], Optional[int], int]:
    """Parse a client ``Content-Range`` header.

    Returns:
        ``(start, end_exclusive, total)``; start and end are None for a
        ``bytes */total`` status query

    Raises:
        ValidationError: If the header is missing or malformed
    """
    if not value:
        raise ValidationError("Content-Range", value, "Content-Range header is required")
    match = _CONTENT_RANGE_RE.fullmatch(value.strip())
    if match:
        start, last, total = (int(g) for g in match.groups())
        if last < start or last >= total:
            raise ValidationError("Content-Range", value, "Invalid Content-Range")
        return start, last + 1, total
    match = _STATUS_RANGE_RE.fullmatch(value.strip())
    if match:
        return None, None, int(match.group(1))
    raise ValidationError("Content-Range", value, "Invalid Content-Range")


class ChunkTransmitter:
    """Sends byte ranges to a session URL and interprets the backend's answer."""

    def __init__(self, http: Any, timeout: float = CHUNK_TIMEOUT) -> None:
        self.http = http
        self.timeout = timeout

    def send(self, session: UploadSession, data: bytes, start: int) -> ChunkResult:
        """PUT one chunk at offset ``start``.

        Raises:
            ValidationError: For an empty chunk or one extending past the total
            TransientTransportError: On timeout, connection failure or a retryable status
            ProtocolError: On any other unexpected status
        """
        if not data:
            raise ValidationError("chunk", 0, "Chunk must not be empty")
        end = start + len(data)
        if start < 0 or end > session.total_size:
            raise ValidationError(
                "chunk", (start, end), f"Chunk {start}-{end} exceeds file size {session.total_size}"
            )

        headers = {
            "Content-Length": str(len(data)),
            "Content-Range": content_range(start, end, session.total_size),
        }
        response = self._put(session.continuation_handle, data, headers)
        result = self.interpret(response, session.total_size)
        logger.debug(
            f"Chunk {start}-{end - 1}/{session.total_size} -> {response.status_code}, "
            f"confirmed {result.bytes_confirmed}"
        )
        return result

    def probe(self, session: UploadSession) -> ChunkResult:
        """Ask the backend how many bytes of the session it holds."""
        return self.query(session.continuation_handle, session.total_size)

    def query(self, handle: str, total_size: Optional[int] = None) -> ChunkResult:
        """Status probe for a bare session handle; the total may be unknown."""
        headers = {
            "Content-Length": "0",
            "Content-Range": f"bytes */{total_size if total_size is not None else '*'}",
        }
        response = self._put(handle, b"", headers)
        return self.interpret(response, total_size)

    def _put(self, url: str, data: bytes, headers: dict[str, str]) -> Any:
        try:
            return self.http.put(url, data=data, headers=headers, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientTransportError(f"Chunk transfer failed: {e}") from e

    def interpret(self, response: Any, total_size: Optional[int]) -> ChunkResult:
        """Map a backend response to a ``ChunkResult``.

        Raises:
            TransientTransportError: For statuses worth retrying
            ProtocolError: For anything the protocol does not allow
        """
        status = response.status_code

        if status == RESUME_INCOMPLETE:
            confirmed = parse_range_header(response.headers.get("Range"))
            if total_size is not None and confirmed > total_size:
                raise ProtocolError(
                    f"Backend acknowledged {confirmed} bytes of {total_size}", status
                )
            return ChunkResult(complete=False, bytes_confirmed=confirmed)

        if status in (200, 201):
            file_data = None
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("id"):
                file_data = body
            if total_size is None:
                total_size = int((file_data or {}).get("size") or 0)
            return ChunkResult(complete=True, bytes_confirmed=total_size, file=file_data)

        if status in TRANSIENT_STATUSES or status >= 500:
            raise TransientTransportError(f"Backend returned {status}", status)

        raise ProtocolError(f"Unexpected backend status {status}", status, response.text or "")
