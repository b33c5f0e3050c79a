"""Chunked upload pipeline.

``ResumableUploader.upload`` is a generator: iterating it drives the
transfer and yields a ``ProgressEvent`` at every state change, so the
caller decides how progress is rendered (progress bar, log line, nothing).
"""

import threading
from typing import BinaryIO, Callable, Iterator, Optional, TypeVar

from ..common.constants import DEFAULT_CHUNK_SIZE
from ..common.exceptions import (
    ManualUploadRequiredError,
    MediaHubError,
    ReconciliationError,
    TransientTransportError,
    UploadCancelledError,
    ValidationError,
)
from ..common.logging import get_logger
from ..common.retry import RetryPolicy
from ..drive.files import DriveFiles
from ..store.models import Owner, UploadRequest
from .dispatcher import UploadDispatcher
from .models import ChunkResult, ProgressEvent, UploadSession, UploadState, UploadTier
from .progress import ProgressTracker
from .reconciler import CompletionReconciler
from .session import SessionInitiator
from .transmitter import ChunkTransmitter

logger = get_logger(__name__)

T = TypeVar("T")


def read_range(source: BinaryIO, start: int, end: int) -> bytes:
    """Read exactly ``[start, end)`` from a seekable stream."""
    source.seek(start)
    data = source.read(end - start)
    if len(data) != end - start:
        raise ValidationError(
            "source", len(data), f"Expected {end - start} bytes at offset {start}, read {len(data)}"
        )
    return data


class ResumableUploader:
    """Drives a file through session creation, chunk transfer and reconciliation."""

    def __init__(
        self,
        initiator: SessionInitiator,
        transmitter: ChunkTransmitter,
        reconciler: CompletionReconciler,
        retry_policy: Optional[RetryPolicy] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        drive_files: Optional[DriveFiles] = None,
        dispatcher: Optional[UploadDispatcher] = None,
    ) -> None:
        """Initialize uploader.

        Args:
            initiator: Opens upload sessions
            transmitter: Sends chunks and probes sessions
            reconciler: Records completed uploads
            retry_policy: Bounds retries of a single chunk
            chunk_size: Bytes per chunk
            drive_files: Drive operations, used for single-request uploads
            dispatcher: Size tier classifier
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.initiator = initiator
        self.transmitter = transmitter
        self.reconciler = reconciler
        self.retry_policy = retry_policy or RetryPolicy()
        self.chunk_size = chunk_size
        self.drive_files = drive_files
        self.dispatcher = dispatcher or UploadDispatcher()

    def upload(
        self,
        owner: Owner,
        source: BinaryIO,
        file_name: str,
        file_size: int,
        mime_type: str,
        request_id: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[ProgressEvent]:
        """Upload ``source`` through a new (or reused) resumable session.

        Yields:
            Progress events, ending with ``RECONCILED``

        Raises:
            MediaHubError: Whatever stopped the upload; a ``FAILED`` event
                precedes transmission failures
        """
        existing = self.initiator.find_completed(owner, request_id)
        if existing is not None:
            logger.info(f"Request {request_id} already completed as {existing.drive_file_id}")
            yield ProgressEvent(
                state=UploadState.RECONCILED,
                bytes_confirmed=file_size,
                total_size=file_size,
                message="duplicate",
                record=existing,
            )
            return

        session = self.initiator.create(owner, file_name, file_size, mime_type, request_id)
        yield from self.run(owner, session, source, cancel, probe_first=session.reused)

    def resume(
        self,
        owner: Owner,
        session: UploadSession,
        source: BinaryIO,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[ProgressEvent]:
        """Continue an interrupted session from the offset Drive reports."""
        yield from self.run(owner, session, source, cancel, probe_first=True)

    def run(
        self,
        owner: Owner,
        session: UploadSession,
        source: BinaryIO,
        cancel: Optional[threading.Event] = None,
        probe_first: bool = False,
    ) -> Iterator[ProgressEvent]:
        """Transfer the remaining bytes of ``session`` and reconcile it."""
        tracker = ProgressTracker(session)
        yield tracker.event(UploadState.SESSION_CREATED)

        result: Optional[ChunkResult] = None
        try:
            if probe_first:
                result = yield from self._with_retry(
                    tracker, lambda: self.transmitter.probe(session), cancel
                )
                if result.complete:
                    tracker.finish()
                else:
                    tracker.confirm(result.bytes_confirmed)
                    logger.info(
                        f"Resuming {session.file_name} at byte {tracker.bytes_confirmed}"
                    )

            stalled = 0
            while result is None or not result.complete:
                self._check_cancel(session, tracker, cancel)
                start, end = tracker.next_range(self.chunk_size)
                data = read_range(source, start, end)
                result = yield from self._with_retry(
                    tracker, lambda: self.transmitter.send(session, data, start), cancel
                )
                # a response that arrives after cancellation is discarded
                self._check_cancel(session, tracker, cancel)
                if result.complete:
                    tracker.finish()
                    yield tracker.event(UploadState.TRANSMITTING)
                    continue

                before = tracker.bytes_confirmed
                tracker.confirm(result.bytes_confirmed)
                if tracker.bytes_confirmed > before:
                    stalled = 0
                    yield tracker.event(UploadState.TRANSMITTING)
                    continue

                stalled += 1
                if stalled >= self.retry_policy.max_attempts:
                    raise TransientTransportError(
                        f"Drive accepted no bytes of {session.file_name} past "
                        f"{tracker.bytes_confirmed} in {stalled} attempts"
                    )
                delay = self.retry_policy.delay_for(stalled - 1)
                logger.warning(
                    f"No progress on {session.file_name} at byte {tracker.bytes_confirmed}, "
                    f"retrying in {delay:.1f}s"
                )
                yield tracker.event(
                    UploadState.RETRY_WAIT,
                    attempt=stalled,
                    message=f"Retrying in {delay:.1f}s",
                )
                self.retry_policy.sleep(delay)
        except MediaHubError as e:
            logger.error(f"Upload of {session.file_name} failed: {e}")
            yield tracker.event(
                UploadState.FAILED,
                message=e.user_message,
                session_handle=session.continuation_handle,
            )
            raise

        yield tracker.event(UploadState.BACKEND_COMPLETE)

        try:
            reconciled = self.reconciler.reconcile(owner, session, result.file)
        except ReconciliationError as e:
            logger.error(f"Could not reconcile {session.file_name}: {e}")
            raise

        message = "ambiguous" if reconciled.ambiguous else ""
        yield tracker.event(UploadState.RECONCILED, message=message, record=reconciled.record)

    def _with_retry(
        self,
        tracker: ProgressTracker,
        func: Callable[[], T],
        cancel: Optional[threading.Event],
    ) -> Iterator[ProgressEvent]:
        attempts = self.retry_policy.attempts(func, cancel)
        while True:
            try:
                notice = next(attempts)
            except StopIteration as stop:
                return stop.value
            yield tracker.event(
                UploadState.RETRY_WAIT,
                attempt=notice.attempt,
                message=f"Retrying in {notice.delay:.1f}s",
            )

    @staticmethod
    def _check_cancel(
        session: UploadSession,
        tracker: ProgressTracker,
        cancel: Optional[threading.Event],
    ) -> None:
        if cancel is not None and cancel.is_set():
            raise UploadCancelledError(
                f"Upload of {session.file_name} cancelled at byte {tracker.bytes_confirmed}"
            )

    def upload_any(
        self,
        owner: Owner,
        source: BinaryIO,
        file_name: str,
        file_size: int,
        mime_type: str,
        request_id: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[ProgressEvent]:
        """Upload using whichever tier the file size calls for.

        Raises:
            ManualUploadRequiredError: If the file is above the automatic limit
        """
        tier = self.dispatcher.classify(file_size)
        if tier == UploadTier.MANUAL:
            raise ManualUploadRequiredError(
                f"{file_name} is {file_size} bytes, above the automatic upload limit",
                {"file_size": file_size, "limit": self.dispatcher.medium_limit},
            )
        if tier == UploadTier.CHUNKED or self.drive_files is None:
            yield from self.upload(owner, source, file_name, file_size, mime_type, request_id, cancel)
            return
        yield from self.upload_small(owner, source, file_name, file_size, mime_type, request_id)

    def upload_small(
        self,
        owner: Owner,
        source: BinaryIO,
        file_name: str,
        file_size: int,
        mime_type: str,
        request_id: Optional[str] = None,
    ) -> Iterator[ProgressEvent]:
        """Upload a file in one request and record it."""
        if self.drive_files is None:
            raise ValidationError("file", file_name, "Single-request upload is not available")

        existing = self.initiator.find_completed(owner, request_id)
        if existing is not None:
            yield ProgressEvent(
                state=UploadState.RECONCILED,
                bytes_confirmed=file_size,
                total_size=file_size,
                message="duplicate",
                record=existing,
            )
            return

        self.initiator.validate(file_name, file_size, mime_type)
        if self.initiator.rate_limiter is not None:
            self.initiator.rate_limiter.acquire(owner.id, file_size)

        yield ProgressEvent(UploadState.TRANSMITTING, 0, file_size)
        drive_file = self.drive_files.upload_small(owner, source, file_name, mime_type)
        yield ProgressEvent(UploadState.BACKEND_COMPLETE, file_size, file_size)

        if request_id and self.initiator.store is not None:
            self.initiator.store.save_upload_request(
                UploadRequest(
                    owner_id=owner.id,
                    request_id=request_id,
                    session_handle="",
                    file_name=file_name,
                    file_size=file_size,
                    mime_type=mime_type,
                )
            )
        reconciled = self.reconciler.reconcile_drive_file(owner, drive_file, request_id)
        yield ProgressEvent(UploadState.RECONCILED, file_size, file_size, record=reconciled.record)


def last_event(events: Iterator[ProgressEvent]) -> ProgressEvent:
    """Drain a progress sequence and return its final event."""
    final: Optional[ProgressEvent] = None
    for final in events:
        pass
    if final is None:
        raise ValueError("upload produced no events")
    return final
