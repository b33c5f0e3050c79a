"""Tests for the upload command helpers."""

import threading
from pathlib import Path
from typing import Any, Iterator
from unittest.mock import Mock

import pytest
from rich.progress import Progress

from conftest import SESSION_HANDLE
from media_hub.cli import upload_cmd
from media_hub.cli.upload_cmd import UploadOutcome, _upload_one, print_resume_hints
from media_hub.common.exceptions import TransientTransportError
from media_hub.store.models import Owner
from media_hub.upload.models import ProgressEvent, UploadState


def interrupted_upload(*args: Any, **kwargs: Any) -> Iterator[ProgressEvent]:
    yield ProgressEvent(UploadState.SESSION_CREATED, 0, 3)
    yield ProgressEvent(
        UploadState.FAILED,
        0,
        3,
        message="Network error, please retry",
        session_handle=SESSION_HANDLE,
    )
    raise TransientTransportError("Backend returned 503", 503)


@pytest.fixture
def media_file(tmp_path: Path) -> Path:
    path = tmp_path / "memo.mp3"
    path.write_bytes(b"abc")
    return path


@pytest.fixture
def info(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    messages: list[str] = []
    monkeypatch.setattr(upload_cmd, "print_info", messages.append)
    return messages


def test_failed_upload_keeps_session_handle(media_file: Path, owner: Owner) -> None:
    services = Mock()
    services.uploader.upload_any.side_effect = interrupted_upload

    outcome = _upload_one(
        services, owner, media_file, Progress(disable=True), threading.Event(), None
    )

    assert outcome.error == TransientTransportError.user_message
    assert outcome.session_handle == SESSION_HANDLE
    assert outcome.record is None


def test_resume_hint_names_handle_and_path(
    media_file: Path, owner: Owner, info: list[str]
) -> None:
    outcomes = [
        UploadOutcome(path=media_file, error="Network error", session_handle=SESSION_HANDLE),
        UploadOutcome(path=Path("done.mp3")),
        UploadOutcome(path=Path("refused.mp3"), error="Unsupported file type"),
    ]

    print_resume_hints(outcomes, owner)

    assert len(info) == 1
    assert f"media-hub resume '{SESSION_HANDLE}' '{media_file}'" in info[0]
    assert "--owner alice@example.com" in info[0]
