"""Folder tree management inside the shared drive."""

from threading import Lock
from typing import Any, Optional

from ..auth.service import DriveServiceFactory
from ..common.constants import (
    FOLDER_MIME_TYPE,
    INCOMING_FOLDER_NAME,
    PROCESSED_FOLDER_NAME,
    ROOT_FOLDER_NAME,
)
from ..common.logging import get_logger
from ..common.retry import exponential_backoff
from ..store.models import Owner

logger = get_logger(__name__)


def quote_query_value(value: str) -> str:
    """Escape a value for use inside a quoted Drive query literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def list_scope(shared_drive_id: Optional[str]) -> dict[str, Any]:
    """Keyword arguments that scope ``files.list`` to the shared drive."""
    kwargs: dict[str, Any] = {
        "supportsAllDrives": True,
        "includeItemsFromAllDrives": True,
    }
    if shared_drive_id:
        kwargs.update(corpora="drive", driveId=shared_drive_id)
    return kwargs


class FolderResolver:
    """Resolves, and lazily creates, the Media Hub folder tree.

    Layout: ``Media Hub/<owner folder>/{Incoming,Processed}``. Lookups are
    cached; a second resolution finds the existing folder instead of
    creating a duplicate.
    """

    def __init__(
        self,
        service_factory: DriveServiceFactory,
        shared_drive_id: Optional[str] = None,
        root_folder_id: Optional[str] = None,
    ) -> None:
        """Initialize folder resolver.

        Args:
            service_factory: Factory for creating Drive API service
            shared_drive_id: Shared drive holding the tree
            root_folder_id: Pre-configured Media Hub root folder
        """
        self.service_factory = service_factory
        self.shared_drive_id = shared_drive_id
        self.root_folder_id = root_folder_id
        self._cache: dict[tuple[Optional[str], str], str] = {}
        self._lock = Lock()

    def root_folder(self) -> str:
        """ID of the Media Hub root folder."""
        if self.root_folder_id:
            return self.root_folder_id
        return self._ensure_folder(ROOT_FOLDER_NAME, self.shared_drive_id)

    def user_folder(self, owner: Owner) -> str:
        """ID of the owner's folder, creating it with its subfolders if needed."""
        root_id = self.root_folder()
        key = (root_id, owner.folder_name)
        if key in self._cache:
            return self._cache[key]

        with self._lock:
            folder_id = self._find_folder(owner.folder_name, root_id)
            if folder_id is None:
                folder_id = self._create_folder(owner.folder_name, root_id)
                logger.info(f"Created user folder for {owner.email}: {folder_id}")
                for name in (INCOMING_FOLDER_NAME, PROCESSED_FOLDER_NAME):
                    self._cache[(folder_id, name)] = self._create_folder(name, folder_id)
            self._cache[key] = folder_id
        return folder_id

    def incoming_folder(self, owner: Owner) -> str:
        """ID of the owner's ``Incoming`` folder, where uploads land."""
        return self._ensure_folder(INCOMING_FOLDER_NAME, self.user_folder(owner))

    def processed_folder(self, owner: Owner) -> str:
        """ID of the owner's ``Processed`` folder."""
        return self._ensure_folder(PROCESSED_FOLDER_NAME, self.user_folder(owner))

    def _ensure_folder(self, name: str, parent_id: Optional[str]) -> str:
        key = (parent_id, name)
        if key in self._cache:
            return self._cache[key]

        with self._lock:
            if key not in self._cache:
                folder_id = self._find_folder(name, parent_id)
                if folder_id is None:
                    folder_id = self._create_folder(name, parent_id)
                    logger.info(f"Created folder '{name}': {folder_id}")
                self._cache[key] = folder_id
        return self._cache[key]

    @exponential_backoff()
    def _find_folder(self, name: str, parent_id: Optional[str]) -> Optional[str]:
        """Find a non-trashed folder by name under a parent.

        Args:
            name: Folder name
            parent_id: Parent folder or shared drive ID (None searches everywhere)

        Returns:
            Folder ID or None
        """
        service = self.service_factory.create_service()

        query_parts = [
            f"name = '{quote_query_value(name)}'",
            f"mimeType = '{FOLDER_MIME_TYPE}'",
            "trashed = false",
        ]
        if parent_id:
            query_parts.append(f"'{parent_id}' in parents")

        response = (
            service.files()
            .list(
                q=" and ".join(query_parts),
                fields="files(id, name)",
                **list_scope(self.shared_drive_id),
            )
            .execute()
        )
        files = response.get("files", [])
        return files[0]["id"] if files else None

    @exponential_backoff()
    def _create_folder(self, name: str, parent_id: Optional[str]) -> str:
        service = self.service_factory.create_service()
        body: dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id:
            body["parents"] = [parent_id]

        folder = (
            service.files()
            .create(body=body, supportsAllDrives=True, fields="id")
            .execute()
        )
        return folder["id"]
