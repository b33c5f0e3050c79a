"""Tests for Drive folder and file operations."""

import io
from unittest.mock import Mock

import pytest
from googleapiclient.errors import HttpError

from media_hub.common.exceptions import NotFoundError, StorageError
from media_hub.drive.files import DriveFile, DriveFiles
from media_hub.drive.folders import FolderResolver, list_scope, quote_query_value
from media_hub.store.models import Owner


def _http_error(status: int) -> HttpError:
    resp = Mock()
    resp.status = status
    resp.reason = "error"
    return HttpError(resp, b"{}")


@pytest.fixture
def factory(mock_drive_service: Mock) -> Mock:
    service_factory = Mock()
    service_factory.create_service.return_value = mock_drive_service
    return service_factory


@pytest.fixture
def files_resource(mock_drive_service: Mock) -> Mock:
    return mock_drive_service.files.return_value


def test_quote_query_value() -> None:
    assert quote_query_value("it's") == "it\\'s"
    assert quote_query_value("a\\b") == "a\\\\b"


def test_list_scope() -> None:
    assert "driveId" not in list_scope(None)
    scope = list_scope("shared-1")
    assert scope["corpora"] == "drive"
    assert scope["driveId"] == "shared-1"
    assert scope["supportsAllDrives"] is True


def test_folder_tree_created_once(factory: Mock, files_resource: Mock, owner: Owner) -> None:
    """A missing tree is created on first use and cached afterwards."""
    files_resource.list.return_value.execute.return_value = {"files": []}
    files_resource.create.return_value.execute.side_effect = [
        {"id": "root"},
        {"id": "user"},
        {"id": "incoming"},
        {"id": "processed"},
    ]
    resolver = FolderResolver(factory, shared_drive_id="shared-1")

    assert resolver.incoming_folder(owner) == "incoming"
    assert resolver.processed_folder(owner) == "processed"
    assert resolver.incoming_folder(owner) == "incoming"

    assert files_resource.create.call_count == 4
    bodies = [c.kwargs["body"] for c in files_resource.create.call_args_list]
    assert bodies[0] == {
        "name": "Media Hub",
        "mimeType": "application/vnd.google-apps.folder",
        "parents": ["shared-1"],
    }
    assert bodies[1]["name"] == "alice_at_example.com"
    assert bodies[1]["parents"] == ["root"]
    assert [b["name"] for b in bodies[2:]] == ["Incoming", "Processed"]


def test_existing_folders_are_found(factory: Mock, files_resource: Mock, owner: Owner) -> None:
    files_resource.list.return_value.execute.side_effect = [
        {"files": [{"id": "user-1", "name": "alice_at_example.com"}]},
        {"files": [{"id": "incoming-1", "name": "Incoming"}]},
    ]
    resolver = FolderResolver(factory, root_folder_id="root-1")

    assert resolver.incoming_folder(owner) == "incoming-1"
    files_resource.create.assert_not_called()
    query = files_resource.list.call_args_list[0].kwargs["q"]
    assert "'root-1' in parents" in query


def test_drive_file_from_api() -> None:
    drive_file = DriveFile.from_api(
        {
            "id": "f1",
            "name": "clip.mp4",
            "mimeType": "video/mp4",
            "size": "2048",
            "createdTime": "2024-05-01T10:00:00.000Z",
            "modifiedTime": "2024-05-02T10:00:00.000Z",
            "videoMediaMetadata": {"durationMillis": "61500"},
            "parents": ["incoming-folder"],
        }
    )

    assert drive_file.size == 2048
    assert drive_file.duration == 61
    assert drive_file.parents == ["incoming-folder"]
    assert drive_file.modified_time is not None
    assert drive_file.modified_time.tzinfo is not None

    record = drive_file.to_record("r1", "alice@example.com")
    assert record.drive_file_id == "f1"
    assert record.duration == 61


def test_list_media_files_paginates(
    factory: Mock, files_resource: Mock, mock_folders: Mock, owner: Owner
) -> None:
    files_resource.list.return_value.execute.side_effect = [
        {
            "files": [
                {"id": "a", "name": "a.mp4", "mimeType": "video/mp4"},
                {"id": "n", "name": "notes.txt", "mimeType": "text/plain"},
            ],
            "nextPageToken": "page-2",
        },
        {"files": [{"id": "b", "name": "b.mp3", "mimeType": "audio/mpeg"}]},
    ]
    drive_files = DriveFiles(factory, mock_folders)

    result = drive_files.list_media_files(owner)

    assert [f.id for f in result] == ["a", "b"]
    assert files_resource.list.call_count == 2
    assert files_resource.list.call_args_list[1].kwargs["pageToken"] == "page-2"


def test_get_metadata_not_found(factory: Mock, files_resource: Mock, mock_folders: Mock) -> None:
    files_resource.get.return_value.execute.side_effect = _http_error(404)

    with pytest.raises(NotFoundError):
        DriveFiles(factory, mock_folders).get_metadata("missing")


def test_delete_missing_file_is_not_an_error(
    factory: Mock, files_resource: Mock, mock_folders: Mock
) -> None:
    files_resource.delete.return_value.execute.side_effect = _http_error(404)

    DriveFiles(factory, mock_folders).delete_file("gone")

    files_resource.delete.assert_called_once_with(fileId="gone", supportsAllDrives=True)


def test_upload_small(
    factory: Mock, files_resource: Mock, mock_folders: Mock, owner: Owner
) -> None:
    files_resource.create.return_value.execute.return_value = {
        "id": "small-1",
        "name": "memo.mp3",
        "mimeType": "audio/mpeg",
        "size": "3",
    }

    result = DriveFiles(factory, mock_folders).upload_small(
        owner, io.BytesIO(b"abc"), "memo.mp3", "audio/mpeg"
    )

    assert result.id == "small-1"
    body = files_resource.create.call_args.kwargs["body"]
    assert body["parents"] == ["incoming-folder"]


def test_upload_small_failure(
    factory: Mock, files_resource: Mock, mock_folders: Mock, owner: Owner
) -> None:
    files_resource.create.return_value.execute.side_effect = _http_error(403)

    with pytest.raises(StorageError):
        DriveFiles(factory, mock_folders).upload_small(
            owner, io.BytesIO(b"abc"), "memo.mp3", "audio/mpeg"
        )
