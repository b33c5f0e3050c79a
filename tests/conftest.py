"""Shared pytest fixtures."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional
from unittest.mock import Mock

import pytest

from media_hub.common.constants import DRIVE_UPLOAD_URL
from media_hub.drive.files import DriveFile
from media_hub.store.file_store import FileStore
from media_hub.store.models import FileRecord, Owner

SESSION_HANDLE = f"{DRIVE_UPLOAD_URL}?uploadType=resumable&upload_id=test-upload-id"


def fake_response(
    status_code: int,
    headers: Optional[dict[str, str]] = None,
    json_body: Optional[dict[str, Any]] = None,
    text: str = "",
) -> Mock:
    """Build a stand-in for a ``requests.Response``."""
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = text
    if json_body is None:
        response.json.side_effect = ValueError("No JSON body")
    else:
        response.json.return_value = json_body
    return response


@pytest.fixture
def owner() -> Owner:
    """Create a sample owner."""
    return Owner(id="alice@example.com", email="alice@example.com")


@pytest.fixture
def other_owner() -> Owner:
    return Owner(id="bob@example.com", email="bob@example.com")


@pytest.fixture
def temp_db(tmp_path: Path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def store(temp_db: Path) -> Iterator[FileStore]:
    """File store backed by a temporary database."""
    with FileStore(temp_db) as file_store:
        yield file_store


@pytest.fixture
def mock_http() -> Mock:
    """Create a mock authorized HTTP session."""
    http = Mock()
    http.post.return_value = fake_response(200, headers={"Location": SESSION_HANDLE})
    return http


@pytest.fixture
def mock_folders() -> Mock:
    """Create a mock folder resolver."""
    folders = Mock()
    folders.incoming_folder.return_value = "incoming-folder"
    folders.shared_drive_id = None
    return folders


@pytest.fixture
def mock_drive_service() -> Mock:
    """Create a mock Drive API service."""
    service = Mock()
    files_resource = Mock()
    service.files.return_value = files_resource
    return service


@pytest.fixture
def drive_file() -> DriveFile:
    """Create a sample Drive file."""
    return DriveFile(
        id="drive-file-1",
        name="interview.mp4",
        mime_type="video/mp4",
        size=50_000_000,
        web_view_link="https://drive.google.com/file/d/drive-file-1/view",
        created_time=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        modified_time=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        duration=321,
        parents=["incoming-folder"],
    )


@pytest.fixture
def sample_record(owner: Owner) -> FileRecord:
    """Create a sample file record."""
    return FileRecord(
        id="record-1",
        owner_id=owner.id,
        drive_file_id="drive-file-1",
        name="interview.mp4",
        mime_type="video/mp4",
        size=50_000_000,
        drive_modified_time=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )
