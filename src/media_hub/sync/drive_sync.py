"""Reconcile the local file index with an owner's Drive folder."""

from googleapiclient.errors import HttpError

from ..common.exceptions import MediaHubError, StorageError
from ..common.logging import get_logger
from ..drive.files import DriveFiles
from ..store.file_store import FileStore
from ..store.models import Owner, SyncLog, utcnow

logger = get_logger(__name__)


class DriveSync:
    """Brings records in line with the owner's ``Incoming`` folder.

    Files added in Drive directly get a record, changed files are refreshed
    and records whose file vanished are marked deleted. Each run writes a
    sync log, including failed runs.
    """

    def __init__(self, store: FileStore, drive_files: DriveFiles) -> None:
        self.store = store
        self.drive_files = drive_files

    def run(self, owner: Owner) -> SyncLog:
        """Sync one owner.

        Returns:
            The completed sync log

        Raises:
            StorageError: If Drive could not be listed
        """
        log = self.store.start_sync(owner.id)
        logger.info(f"Starting sync for {owner.email}")

        try:
            drive_files = self.drive_files.list_media_files(owner)
        except (HttpError, MediaHubError) as e:
            log.error = str(e)
            self.store.finish_sync(log)
            logger.error(f"Sync failed for {owner.email}: {e}")
            raise StorageError(f"Failed to list Drive files: {e}") from e

        now = utcnow()
        records = {r.drive_file_id: r for r in self.store.list_files(owner.id, include_deleted=True)}
        seen: set[str] = set()

        for drive_file in drive_files:
            seen.add(drive_file.id)
            record = records.get(drive_file.id)

            if record is None:
                new = drive_file.to_record(self.store.new_id(), owner.id)
                new.last_synced_at = now
                _, created = self.store.get_or_create_file(new)
                if created:
                    log.files_added += 1
                continue

            changed = record.is_deleted or (
                drive_file.modified_time is not None
                and (
                    record.drive_modified_time is None
                    or drive_file.modified_time > record.drive_modified_time
                )
            )
            if changed:
                record.name = drive_file.name
                record.mime_type = drive_file.mime_type
                record.size = drive_file.size
                record.drive_url = drive_file.web_view_link
                record.thumbnail_url = drive_file.thumbnail_url
                record.duration = drive_file.duration
                record.drive_modified_time = drive_file.modified_time
                record.is_deleted = False
                log.files_updated += 1
            record.last_synced_at = now
            self.store.update_file(record)

        for drive_id, record in records.items():
            if drive_id not in seen and not record.is_deleted:
                record.is_deleted = True
                record.last_synced_at = now
                self.store.update_file(record)
                log.files_deleted += 1

        self.store.finish_sync(log)
        logger.info(
            f"Sync for {owner.email}: {log.files_added} added, "
            f"{log.files_updated} updated, {log.files_deleted} deleted"
        )
        return log
