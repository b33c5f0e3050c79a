"""Google Drive file operations."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, BinaryIO, Optional

from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from ..auth.service import DriveServiceFactory
from ..common.constants import FILE_FIELDS, SUPPORTED_MIME_TYPES
from ..common.exceptions import NotFoundError, StorageError
from ..common.logging import get_logger
from ..common.retry import exponential_backoff
from ..store.models import FileRecord, FileStatus, Owner
from .folders import FolderResolver, list_scope, quote_query_value

logger = get_logger(__name__)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class DriveFile:
    """File metadata as reported by Drive."""

    id: str
    name: str
    mime_type: str
    size: Optional[int] = None
    thumbnail_url: Optional[str] = None
    web_view_link: Optional[str] = None
    created_time: Optional[datetime] = None
    modified_time: Optional[datetime] = None
    duration: Optional[int] = None
    parents: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "DriveFile":
        """Parse a ``files`` resource from the Drive API."""
        duration = None
        millis = (data.get("videoMediaMetadata") or {}).get("durationMillis")
        if millis:
            duration = int(millis) // 1000

        return cls(
            id=data["id"],
            name=data.get("name") or "Untitled",
            mime_type=data.get("mimeType") or "application/octet-stream",
            size=int(data["size"]) if data.get("size") is not None else None,
            thumbnail_url=data.get("thumbnailLink"),
            web_view_link=data.get("webViewLink"),
            created_time=_parse_time(data.get("createdTime")),
            modified_time=_parse_time(data.get("modifiedTime")),
            duration=duration,
            parents=list(data.get("parents") or []),
        )

    def to_record(self, record_id: str, owner_id: str) -> FileRecord:
        """Build a new ``FileRecord`` for this file."""
        return FileRecord(
            id=record_id,
            owner_id=owner_id,
            drive_file_id=self.id,
            name=self.name,
            mime_type=self.mime_type,
            size=self.size,
            drive_url=self.web_view_link,
            thumbnail_url=self.thumbnail_url,
            duration=self.duration,
            status=FileStatus.NEW,
            drive_modified_time=self.modified_time,
        )


class DriveFiles:
    """File-level Drive operations scoped to owners' folders."""

    def __init__(
        self,
        service_factory: DriveServiceFactory,
        folders: FolderResolver,
        supported_mime_types: tuple[str, ...] = SUPPORTED_MIME_TYPES,
        page_size: int = 100,
    ) -> None:
        """Initialize Drive file operations.

        Args:
            service_factory: Factory for creating Drive API service
            folders: Folder resolver for owners' folders
            supported_mime_types: MIME types treated as media
            page_size: Number of files to fetch per page
        """
        self.service_factory = service_factory
        self.folders = folders
        self.supported_mime_types = tuple(supported_mime_types)
        self.page_size = page_size

    def is_media(self, mime_type: Optional[str]) -> bool:
        return bool(mime_type) and mime_type in self.supported_mime_types

    @exponential_backoff()
    def list_media_files(self, owner: Owner) -> list[DriveFile]:
        """List media files in the owner's ``Incoming`` folder, newest first."""
        service = self.service_factory.create_service()
        folder_id = self.folders.incoming_folder(owner)

        files: list[DriveFile] = []
        page_token = None
        while True:
            response = (
                service.files()
                .list(
                    q=f"'{folder_id}' in parents and trashed = false",
                    fields=f"nextPageToken, files({FILE_FIELDS})",
                    orderBy="createdTime desc",
                    pageSize=self.page_size,
                    pageToken=page_token,
                    **list_scope(self.folders.shared_drive_id),
                )
                .execute()
            )
            for data in response.get("files", []):
                if self.is_media(data.get("mimeType")):
                    files.append(DriveFile.from_api(data))

            page_token = response.get("nextPageToken")
            if not page_token:
                break

        logger.debug(f"Listed {len(files)} media files for {owner.email}")
        return files

    @exponential_backoff()
    def get_metadata(self, file_id: str) -> DriveFile:
        """Fetch canonical metadata for a file.

        Raises:
            NotFoundError: If Drive has no such file
        """
        service = self.service_factory.create_service()
        try:
            data = (
                service.files()
                .get(fileId=file_id, fields=FILE_FIELDS, supportsAllDrives=True)
                .execute()
            )
        except HttpError as e:
            if e.resp.status == 404:
                raise NotFoundError(f"Drive file not found: {file_id}") from e
            raise
        return DriveFile.from_api(data)

    @exponential_backoff()
    def search_by_name(self, name: str, folder_id: str) -> list[DriveFile]:
        """Find files with an exact name in a folder, most recently created first."""
        service = self.service_factory.create_service()
        response = (
            service.files()
            .list(
                q=(
                    f"name = '{quote_query_value(name)}' and '{folder_id}' in parents "
                    "and trashed = false"
                ),
                fields=f"files({FILE_FIELDS})",
                orderBy="createdTime desc",
                **list_scope(self.folders.shared_drive_id),
            )
            .execute()
        )
        return [DriveFile.from_api(data) for data in response.get("files", [])]

    def upload_small(
        self,
        owner: Owner,
        stream: BinaryIO,
        name: str,
        mime_type: str,
    ) -> DriveFile:
        """Upload a whole file in a single request into the owner's ``Incoming`` folder.

        Raises:
            StorageError: If Drive rejects the upload
        """
        folder_id = self.folders.incoming_folder(owner)
        service = self.service_factory.create_service()
        media = MediaIoBaseUpload(stream, mimetype=mime_type, resumable=False)

        try:
            data = (
                service.files()
                .create(
                    body={"name": name, "mimeType": mime_type, "parents": [folder_id]},
                    media_body=media,
                    supportsAllDrives=True,
                    fields=FILE_FIELDS,
                )
                .execute()
            )
        except HttpError as e:
            raise StorageError(f"Failed to upload {name}: {e}") from e

        logger.info(f"Uploaded {name} in a single request: {data.get('id')}")
        return DriveFile.from_api(data)

    @exponential_backoff()
    def delete_file(self, file_id: str) -> None:
        """Permanently delete a file from Drive.

        A file that is already gone counts as deleted.
        """
        service = self.service_factory.create_service()
        try:
            service.files().delete(fileId=file_id, supportsAllDrives=True).execute()
        except HttpError as e:
            if e.resp.status == 404:
                logger.warning(f"Drive file already deleted: {file_id}")
                return
            raise
        logger.info(f"Deleted Drive file {file_id}")

    def test_connection(self) -> dict[str, Any]:
        """Check the service account can reach Drive.

        Raises:
            StorageError: If the about endpoint fails
        """
        service = self.service_factory.create_service()
        try:
            about = service.about().get(fields="user(displayName, emailAddress), storageQuota").execute()
        except HttpError as e:
            raise StorageError(f"Failed to connect to Drive: {e}") from e
        return {
            "user": about.get("user", {}),
            "storageQuota": about.get("storageQuota", {}),
        }
