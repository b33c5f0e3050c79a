"""End-to-end tests for the chunked upload pipeline."""

import io
import re
import threading
from dataclasses import replace
from typing import Any
from unittest.mock import Mock

import pytest
import requests

from conftest import SESSION_HANDLE, fake_response
from media_hub.common.constants import CHUNK_ALIGNMENT, DEFAULT_CHUNK_SIZE
from media_hub.common.exceptions import (
    ManualUploadRequiredError,
    ProtocolError,
    TransientTransportError,
    UploadCancelledError,
    ValidationError,
)
from media_hub.common.retry import RetryPolicy
from media_hub.drive.files import DriveFile
from media_hub.store.file_store import FileStore
from media_hub.store.models import Owner
from media_hub.upload.models import UploadSession, UploadState
from media_hub.upload.orchestrator import ResumableUploader, last_event, read_range
from media_hub.upload.reconciler import CompletionReconciler
from media_hub.upload.session import SessionInitiator
from media_hub.upload.transmitter import ChunkTransmitter

_RANGE = re.compile(r"bytes (\d+)-(\d+)/(\d+)")


class FakeDrive:
    """Resumable upload endpoint that persists whatever it is sent."""

    def __init__(self, total: int, file_id: str = "drive-file-1") -> None:
        self.total = total
        self.file_id = file_id
        self.received = 0
        self.ranges: list[str] = []

    def put(self, url: str, data: bytes, headers: dict[str, str], timeout: float) -> Any:
        content_range = headers["Content-Range"]
        self.ranges.append(content_range)
        match = _RANGE.fullmatch(content_range)
        if match:
            start, last = int(match.group(1)), int(match.group(2))
            assert start == self.received, f"gap or overlap at {start}, expected {self.received}"
            assert len(data) == last - start + 1
            self.received = last + 1

        if self.received >= self.total:
            return fake_response(
                200,
                json_body={
                    "id": self.file_id,
                    "name": "interview.mp4",
                    "mimeType": "video/mp4",
                    "size": str(self.total),
                },
            )
        headers_out = {"Range": f"bytes=0-{self.received - 1}"} if self.received else {}
        return fake_response(308, headers_out)

    @property
    def chunk_puts(self) -> list[str]:
        return [r for r in self.ranges if "*" not in r]


@pytest.fixture
def drive_files(drive_file: DriveFile) -> Mock:
    """Drive metadata for whichever id was uploaded; size is left unknown."""
    files = Mock()
    files.get_metadata.side_effect = lambda file_id: replace(drive_file, id=file_id, size=None)
    files.search_by_name.return_value = []
    return files


@pytest.fixture
def sleep() -> Mock:
    return Mock()


def make_uploader(
    http: Mock,
    folders: Mock,
    store: FileStore,
    drive_files: Mock,
    sleep: Mock,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> ResumableUploader:
    transmitter = ChunkTransmitter(http, timeout=5)
    return ResumableUploader(
        SessionInitiator(http, folders, store=store),
        transmitter,
        CompletionReconciler(store, drive_files, transmitter, folders),
        retry_policy=RetryPolicy(max_attempts=3, base_delay=1.0, sleep=sleep),
        chunk_size=chunk_size,
        drive_files=drive_files,
    )


def test_fifty_megabyte_upload(
    mock_http: Mock,
    mock_folders: Mock,
    store: FileStore,
    drive_files: Mock,
    drive_file: DriveFile,
    sleep: Mock,
    owner: Owner,
) -> None:
    """A 50 MB file in 10 MiB chunks takes five PUTs and yields one record."""
    total = 50_000_000
    drive = FakeDrive(total)
    mock_http.put.side_effect = drive.put
    drive_files.get_metadata.side_effect = None
    drive_files.get_metadata.return_value = drive_file
    uploader = make_uploader(mock_http, mock_folders, store, drive_files, sleep)

    events = list(
        uploader.upload(owner, io.BytesIO(bytes(total)), "interview.mp4", total, "video/mp4")
    )

    assert len(drive.chunk_puts) == 5
    assert drive.chunk_puts[0] == f"bytes 0-{DEFAULT_CHUNK_SIZE - 1}/{total}"
    assert drive.chunk_puts[-1] == f"bytes {4 * DEFAULT_CHUNK_SIZE}-{total - 1}/{total}"

    states = [e.state for e in events]
    assert states[0] == UploadState.SESSION_CREATED
    assert states.count(UploadState.TRANSMITTING) == 5
    assert states[-2:] == [UploadState.BACKEND_COMPLETE, UploadState.RECONCILED]

    confirmed = [e.bytes_confirmed for e in events]
    assert confirmed == sorted(confirmed)

    record = events[-1].record
    assert record is not None
    assert record.size == 50_000_000
    assert record.drive_file_id == "drive-file-1"
    assert len(store.list_files(owner.id)) == 1
    sleep.assert_not_called()


def test_resume_starts_at_confirmed_offset(
    mock_http: Mock,
    mock_folders: Mock,
    store: FileStore,
    drive_files: Mock,
    sleep: Mock,
    owner: Owner,
) -> None:
    """Resuming at byte N sends N onwards, nothing before and nothing skipped."""
    total = 3 * CHUNK_ALIGNMENT
    offset = CHUNK_ALIGNMENT
    drive = FakeDrive(total)
    drive.received = offset
    mock_http.put.side_effect = drive.put
    uploader = make_uploader(
        mock_http, mock_folders, store, drive_files, sleep, chunk_size=CHUNK_ALIGNMENT
    )
    session = UploadSession(
        continuation_handle=SESSION_HANDLE,
        file_name="interview.mp4",
        total_size=total,
        mime_type="video/mp4",
        owner_id=owner.id,
    )

    events = list(uploader.resume(owner, session, io.BytesIO(bytes(total))))

    assert drive.ranges[0] == f"bytes */{total}"
    assert drive.chunk_puts == [
        f"bytes {offset}-{2 * CHUNK_ALIGNMENT - 1}/{total}",
        f"bytes {2 * CHUNK_ALIGNMENT}-{total - 1}/{total}",
    ]
    assert events[-1].state == UploadState.RECONCILED
    mock_http.post.assert_not_called()


def test_resume_of_finished_session_only_reconciles(
    mock_http: Mock,
    mock_folders: Mock,
    store: FileStore,
    drive_files: Mock,
    sleep: Mock,
    owner: Owner,
) -> None:
    total = CHUNK_ALIGNMENT
    drive = FakeDrive(total)
    drive.received = total
    mock_http.put.side_effect = drive.put
    uploader = make_uploader(mock_http, mock_folders, store, drive_files, sleep)
    session = UploadSession(SESSION_HANDLE, "interview.mp4", total, "video/mp4", owner.id)

    final = last_event(uploader.resume(owner, session, io.BytesIO(bytes(total))))

    assert final.state == UploadState.RECONCILED
    assert drive.chunk_puts == []


def test_transient_failure_is_retried(
    mock_http: Mock,
    mock_folders: Mock,
    store: FileStore,
    drive_files: Mock,
    sleep: Mock,
    owner: Owner,
) -> None:
    total = 2 * CHUNK_ALIGNMENT
    drive = FakeDrive(total)
    calls = {"n": 0}

    def flaky_put(*args: Any, **kwargs: Any) -> Any:
        calls["n"] += 1
        if calls["n"] == 2:
            raise requests.ConnectionError("reset by peer")
        return drive.put(*args, **kwargs)

    mock_http.put.side_effect = flaky_put
    uploader = make_uploader(
        mock_http, mock_folders, store, drive_files, sleep, chunk_size=CHUNK_ALIGNMENT
    )

    events = list(
        uploader.upload(owner, io.BytesIO(bytes(total)), "interview.mp4", total, "video/mp4")
    )

    retries = [e for e in events if e.state == UploadState.RETRY_WAIT]
    assert len(retries) == 1
    assert retries[0].attempt == 1
    assert retries[0].bytes_confirmed == CHUNK_ALIGNMENT
    sleep.assert_called_once_with(1.0)
    assert events[-1].state == UploadState.RECONCILED


def test_exhausted_retries_fail_upload(
    mock_http: Mock,
    mock_folders: Mock,
    store: FileStore,
    drive_files: Mock,
    sleep: Mock,
    owner: Owner,
) -> None:
    mock_http.put.return_value = fake_response(503)
    uploader = make_uploader(mock_http, mock_folders, store, drive_files, sleep)
    total = 5_000_000
    events = []

    with pytest.raises(TransientTransportError):
        for event in uploader.upload(
            owner, io.BytesIO(bytes(total)), "interview.mp4", total, "video/mp4"
        ):
            events.append(event)

    assert mock_http.put.call_count == 3
    assert events[-1].state == UploadState.FAILED
    assert events[-1].bytes_confirmed == 0
    assert events[-1].session_handle == SESSION_HANDLE
    assert store.list_files(owner.id) == []


def test_upload_without_progress_gives_up(
    mock_http: Mock,
    mock_folders: Mock,
    store: FileStore,
    drive_files: Mock,
    sleep: Mock,
    owner: Owner,
) -> None:
    """Drive answering 308 without moving its offset ends the upload after the retry budget."""
    mock_http.put.return_value = fake_response(308)
    uploader = make_uploader(mock_http, mock_folders, store, drive_files, sleep)
    total = 600_000
    events = []

    with pytest.raises(TransientTransportError):
        for event in uploader.upload(
            owner, io.BytesIO(bytes(total)), "interview.mp4", total, "video/mp4"
        ):
            events.append(event)

    assert mock_http.put.call_count == 3
    retries = [e for e in events if e.state == UploadState.RETRY_WAIT]
    assert [e.attempt for e in retries] == [1, 2]
    assert [c.args for c in sleep.call_args_list] == [(1.0,), (2.0,)]
    assert events[-1].state == UploadState.FAILED
    assert events[-1].bytes_confirmed == 0
    assert store.list_files(owner.id) == []


def test_protocol_error_is_not_retried(
    mock_http: Mock,
    mock_folders: Mock,
    store: FileStore,
    drive_files: Mock,
    sleep: Mock,
    owner: Owner,
) -> None:
    mock_http.put.return_value = fake_response(404, text="Not Found")
    uploader = make_uploader(mock_http, mock_folders, store, drive_files, sleep)

    with pytest.raises(ProtocolError):
        list(uploader.upload(owner, io.BytesIO(bytes(100)), "a.mp3", 100, "audio/mpeg"))

    assert mock_http.put.call_count == 1
    sleep.assert_not_called()


def test_cancel_leaves_offset_at_last_confirmation(
    mock_http: Mock,
    mock_folders: Mock,
    store: FileStore,
    drive_files: Mock,
    sleep: Mock,
    owner: Owner,
) -> None:
    total = 4 * CHUNK_ALIGNMENT
    drive = FakeDrive(total)
    mock_http.put.side_effect = drive.put
    uploader = make_uploader(
        mock_http, mock_folders, store, drive_files, sleep, chunk_size=CHUNK_ALIGNMENT
    )
    cancel = threading.Event()

    events = uploader.upload(
        owner, io.BytesIO(bytes(total)), "interview.mp4", total, "video/mp4", cancel=cancel
    )
    last = None
    with pytest.raises(UploadCancelledError):
        for event in events:
            last = event
            if event.state == UploadState.TRANSMITTING:
                cancel.set()

    assert len(drive.chunk_puts) == 1
    assert last is not None
    assert last.bytes_confirmed == CHUNK_ALIGNMENT


def test_chunk_answered_after_cancel_is_discarded(
    mock_http: Mock,
    mock_folders: Mock,
    store: FileStore,
    drive_files: Mock,
    sleep: Mock,
    owner: Owner,
) -> None:
    """A PUT that returns once cancel is set confirms nothing to the caller."""
    total = 4 * CHUNK_ALIGNMENT
    drive = FakeDrive(total)
    cancel = threading.Event()

    def put_then_cancel(*args: Any, **kwargs: Any) -> Any:
        cancel.set()
        return drive.put(*args, **kwargs)

    mock_http.put.side_effect = put_then_cancel
    uploader = make_uploader(
        mock_http, mock_folders, store, drive_files, sleep, chunk_size=CHUNK_ALIGNMENT
    )
    events = []

    with pytest.raises(UploadCancelledError):
        for event in uploader.upload(
            owner, io.BytesIO(bytes(total)), "interview.mp4", total, "video/mp4", cancel=cancel
        ):
            events.append(event)

    assert len(drive.chunk_puts) == 1
    assert UploadState.TRANSMITTING not in [e.state for e in events]
    assert events[-1].state == UploadState.FAILED
    assert events[-1].bytes_confirmed == 0
    assert events[-1].session_handle == SESSION_HANDLE
    assert store.list_files(owner.id) == []


def test_request_id_returns_existing_record(
    mock_http: Mock,
    mock_folders: Mock,
    store: FileStore,
    drive_files: Mock,
    sleep: Mock,
    owner: Owner,
) -> None:
    total = CHUNK_ALIGNMENT
    drive = FakeDrive(total)
    mock_http.put.side_effect = drive.put
    uploader = make_uploader(mock_http, mock_folders, store, drive_files, sleep)

    first = last_event(
        uploader.upload(owner, io.BytesIO(bytes(total)), "a.mp4", total, "video/mp4", "req-1")
    )
    second = last_event(
        uploader.upload(owner, io.BytesIO(bytes(total)), "a.mp4", total, "video/mp4", "req-1")
    )

    assert second.message == "duplicate"
    assert second.record.id == first.record.id
    assert mock_http.post.call_count == 1
    assert len(drive.chunk_puts) == 1


def test_upload_any_small_file_goes_single_request(
    mock_http: Mock,
    mock_folders: Mock,
    store: FileStore,
    drive_files: Mock,
    sleep: Mock,
    owner: Owner,
) -> None:
    small = DriveFile(id="small-1", name="memo.mp3", mime_type="audio/mpeg", size=1000)
    drive_files.upload_small.return_value = small
    uploader = make_uploader(mock_http, mock_folders, store, drive_files, sleep)

    final = last_event(
        uploader.upload_any(owner, io.BytesIO(bytes(1000)), "memo.mp3", 1000, "audio/mpeg")
    )

    assert final.state == UploadState.RECONCILED
    assert final.record.drive_file_id == "small-1"
    mock_http.post.assert_not_called()
    mock_http.put.assert_not_called()


def test_upload_any_rejects_manual_tier(
    mock_http: Mock,
    mock_folders: Mock,
    store: FileStore,
    drive_files: Mock,
    sleep: Mock,
    owner: Owner,
) -> None:
    uploader = make_uploader(mock_http, mock_folders, store, drive_files, sleep)

    with pytest.raises(ManualUploadRequiredError):
        list(uploader.upload_any(owner, io.BytesIO(), "film.mov", 600 * 1024**2, "video/quicktime"))

    mock_http.post.assert_not_called()


def test_read_range_short_read() -> None:
    with pytest.raises(ValidationError):
        read_range(io.BytesIO(b"abc"), 0, 10)
