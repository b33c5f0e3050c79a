"""Confirmed-offset bookkeeping for one upload."""

from typing import Optional

from ..common.exceptions import ProtocolError
from ..store.models import FileRecord
from .models import ProgressEvent, UploadSession, UploadState


class ProgressTracker:
    """Owns ``bytes_confirmed`` for a session.

    The confirmed offset only advances on backend acknowledgement and never
    moves backwards; a stale acknowledgement arriving late is ignored.
    """

    def __init__(self, session: UploadSession) -> None:
        self.session = session

    @property
    def bytes_confirmed(self) -> int:
        return self.session.bytes_confirmed

    @property
    def total_size(self) -> int:
        return self.session.total_size

    @property
    def percentage(self) -> float:
        if self.total_size <= 0:
            return 0.0
        return min(100.0, self.bytes_confirmed / self.total_size * 100)

    def confirm(self, offset: int) -> int:
        """Record that the backend holds ``offset`` bytes.

        Returns:
            The confirmed offset after the update

        Raises:
            ProtocolError: If ``offset`` is beyond the file size
        """
        if offset > self.total_size:
            raise ProtocolError(f"Acknowledged offset {offset} exceeds file size {self.total_size}")
        if offset > self.session.bytes_confirmed:
            self.session.bytes_confirmed = offset
        return self.session.bytes_confirmed

    def finish(self) -> None:
        self.session.bytes_confirmed = self.total_size

    def next_range(self, chunk_size: int) -> tuple[int, int]:
        """Byte range ``[start, end)`` of the next chunk to send."""
        start = self.session.bytes_confirmed
        return start, min(start + chunk_size, self.total_size)

    def event(
        self,
        state: UploadState,
        attempt: int = 0,
        message: str = "",
        record: Optional[FileRecord] = None,
        session_handle: Optional[str] = None,
    ) -> ProgressEvent:
        return ProgressEvent(
            state=state,
            bytes_confirmed=self.bytes_confirmed,
            total_size=self.total_size,
            attempt=attempt,
            message=message,
            record=record,
            session_handle=session_handle,
        )
