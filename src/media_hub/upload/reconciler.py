"""Turn a finished backend upload into exactly one file record."""

from typing import Any, Optional

from googleapiclient.errors import HttpError

from ..common.exceptions import (
    IncompleteUploadError,
    MediaHubError,
    NotFoundError,
    ReconciliationError,
)
from ..common.logging import get_logger
from ..drive.files import DriveFile, DriveFiles
from ..drive.folders import FolderResolver
from ..store.file_store import FileStore
from ..store.models import Owner
from .models import ReconcileResult, UploadSession
from .transmitter import ChunkTransmitter

logger = get_logger(__name__)


class CompletionReconciler:
    """Creates the record for a completed upload, at most once per Drive file.

    The Drive file id comes, in order of preference, from the completion
    response, from a status probe of the session, or from a name search in
    the destination folder. A name search can match several files; the
    most recent one of the right size is used and the result is flagged
    ``ambiguous``.
    """

    def __init__(
        self,
        store: FileStore,
        drive_files: DriveFiles,
        transmitter: ChunkTransmitter,
        folders: FolderResolver,
    ) -> None:
        self.store = store
        self.drive_files = drive_files
        self.transmitter = transmitter
        self.folders = folders

    def reconcile(
        self,
        owner: Owner,
        session: UploadSession,
        file_metadata: Optional[dict[str, Any]] = None,
    ) -> ReconcileResult:
        """Record the file produced by ``session``.

        Calling this twice for the same upload returns the same record.

        Args:
            owner: Owner of the upload
            session: The finished session
            file_metadata: Completion body returned by Drive, if the caller has it

        Raises:
            IncompleteUploadError: If Drive still expects bytes for the session
            NotFoundError: If the file belongs to another owner or folder
            ReconciliationError: If no Drive file can be identified
        """
        file_id = (file_metadata or {}).get("id")
        ambiguous = False
        candidates: list[str] = []

        if not file_id:
            file_id = self._probe_for_id(session)

        if not file_id:
            file_id, ambiguous, candidates = self._search_for_id(owner, session)

        if not file_id:
            raise ReconciliationError(
                f"Could not locate uploaded file {session.file_name}",
                {"file_name": session.file_name, "size": session.total_size},
            )

        result = self._record_for(owner, file_id, session.request_id, session=session)
        result.ambiguous = ambiguous
        result.candidates = candidates
        return result

    def reconcile_drive_file(
        self,
        owner: Owner,
        drive_file: DriveFile,
        request_id: Optional[str] = None,
    ) -> ReconcileResult:
        """Record a file uploaded without a session (single-request upload)."""
        return self._record_for(owner, drive_file.id, request_id, drive_file)

    def _probe_for_id(self, session: UploadSession) -> Optional[str]:
        try:
            result = self.transmitter.probe(session)
        except MediaHubError as e:
            logger.warning(f"Session probe failed for {session.file_name}: {e}")
            return None

        if not result.complete:
            raise IncompleteUploadError(
                f"Upload of {session.file_name} has {result.bytes_confirmed} of "
                f"{session.total_size} bytes",
                result.bytes_confirmed,
            )
        return (result.file or {}).get("id")

    def _search_for_id(
        self, owner: Owner, session: UploadSession
    ) -> tuple[Optional[str], bool, list[str]]:
        folder_id = session.folder_id
        try:
            if folder_id is None:
                folder_id = self.folders.incoming_folder(owner)
            matches = self.drive_files.search_by_name(session.file_name, folder_id)
        except (HttpError, MediaHubError) as e:
            logger.warning(f"Name search failed for {session.file_name}: {e}")
            return None, False, []

        sized = [m for m in matches if m.size is None or m.size == session.total_size]
        if not sized:
            return None, False, []

        candidates = [m.id for m in sized]
        ambiguous = len(sized) > 1
        if ambiguous:
            logger.warning(
                f"{len(sized)} files named {session.file_name!r} match; "
                f"using most recent {sized[0].id}"
            )
        return sized[0].id, ambiguous, candidates

    def _record_for(
        self,
        owner: Owner,
        file_id: str,
        request_id: Optional[str],
        drive_file: Optional[DriveFile] = None,
        session: Optional[UploadSession] = None,
    ) -> ReconcileResult:
        existing = self.store.get_by_drive_id(file_id)
        if existing is not None:
            if existing.owner_id != owner.id:
                raise NotFoundError(f"No uploaded file {file_id} for {owner.email}")
            created = False
            record = existing
        else:
            if drive_file is None:
                try:
                    drive_file = self.drive_files.get_metadata(file_id)
                except NotFoundError as e:
                    raise ReconciliationError(f"Uploaded file {file_id} is not visible in Drive") from e
                if session is not None:
                    self._check_upload_target(owner, session, drive_file)
            record, created = self.store.get_or_create_file(
                drive_file.to_record(self.store.new_id(), owner.id)
            )

        if request_id:
            self.store.complete_upload_request(owner.id, request_id, file_id)

        if created:
            logger.info(f"Recorded {record.name} ({file_id}) for {owner.email}")
        else:
            logger.debug(f"Record for {file_id} already exists")
        return ReconcileResult(record=record, created=created)

    def _check_upload_target(
        self, owner: Owner, session: UploadSession, drive_file: DriveFile
    ) -> None:
        """Only files in the owner's upload folder with the declared size can be claimed.

        Raises:
            NotFoundError: If the file lives outside the owner's upload folder
            ReconciliationError: If its size differs from the declared size
        """
        folder_id = session.folder_id
        if folder_id is None:
            try:
                folder_id = self.folders.incoming_folder(owner)
            except (HttpError, MediaHubError) as e:
                raise ReconciliationError(f"Could not resolve upload folder: {e}") from e

        if folder_id not in drive_file.parents:
            logger.warning(
                f"{owner.email} tried to claim {drive_file.id} outside folder {folder_id}"
            )
            raise NotFoundError(f"No uploaded file {drive_file.id} for {owner.email}")

        if drive_file.size is not None and drive_file.size != session.total_size:
            raise ReconciliationError(
                f"Drive file {drive_file.id} has {drive_file.size} bytes, "
                f"upload declared {session.total_size}",
                {"file_id": drive_file.id, "size": drive_file.size},
            )
