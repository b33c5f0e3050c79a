"""SQLite-backed store for file records, upload requests and sync logs."""

import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from threading import RLock
from typing import Optional, Union

from ..common.exceptions import StorageError
from ..common.logging import get_logger
from .models import FileRecord, FileStatus, SyncLog, UploadRequest, utcnow

logger = get_logger(__name__)

_FILE_COLUMNS = (
    "id, owner_id, drive_file_id, name, mime_type, size, drive_url, thumbnail_url, "
    "duration, status, is_deleted, drive_modified_time, last_synced_at, created_at, updated_at"
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class FileStore:
    """SQLite database for file metadata.

    One connection is shared across threads; every statement runs under a
    lock so the web server's worker threads never interleave on it.
    """

    def __init__(self, db_path: Union[Path, str]) -> None:
        """Initialize file store.

        Args:
            db_path: Path to SQLite database file (``":memory:"`` for tests)
        """
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None
        self.lock = RLock()
        self._create_schema()

    def _create_schema(self) -> None:
        """Create database schema if it doesn't exist."""
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS files (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                drive_file_id TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                mime_type TEXT NOT NULL,
                size INTEGER,
                drive_url TEXT,
                thumbnail_url TEXT,
                duration INTEGER,
                status TEXT NOT NULL DEFAULT 'NEW',
                is_deleted INTEGER NOT NULL DEFAULT 0,
                drive_modified_time TEXT,
                last_synced_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_files_owner ON files(owner_id);
            CREATE INDEX IF NOT EXISTS idx_files_status ON files(status);

            CREATE TABLE IF NOT EXISTS upload_requests (
                owner_id TEXT NOT NULL,
                request_id TEXT NOT NULL,
                session_handle TEXT NOT NULL,
                file_name TEXT NOT NULL,
                file_size INTEGER NOT NULL,
                mime_type TEXT NOT NULL,
                drive_file_id TEXT,
                created_at TEXT NOT NULL,
                PRIMARY KEY (owner_id, request_id)
            );

            CREATE TABLE IF NOT EXISTS sync_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                owner_id TEXT NOT NULL,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                files_added INTEGER NOT NULL DEFAULT 0,
                files_updated INTEGER NOT NULL DEFAULT 0,
                files_deleted INTEGER NOT NULL DEFAULT 0,
                error TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_sync_owner ON sync_logs(owner_id);
        """)
        self.conn.commit()
        logger.debug(f"Initialized file store at {self.db_path}")

    def _connection(self) -> sqlite3.Connection:
        if not self.conn:
            raise StorageError("Database connection not initialized")
        return self.conn

    # Files

    def get_or_create_file(self, record: FileRecord) -> tuple[FileRecord, bool]:
        """Insert a record unless one exists for the same Drive file.

        Args:
            record: Record to insert

        Returns:
            Tuple of (stored record, whether it was created)
        """
        with self.lock:
            conn = self._connection()
            cursor = conn.execute(
                f"""
                INSERT INTO files ({_FILE_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(drive_file_id) DO NOTHING
                """,
                self._file_to_row(record),
            )
            conn.commit()
            created = cursor.rowcount == 1
            stored = self.get_by_drive_id(record.drive_file_id)

        if stored is None:
            raise StorageError(f"Record for {record.drive_file_id} vanished after insert")
        if created:
            logger.info(f"Stored file record {stored.id} for Drive file {stored.drive_file_id}")
        return stored, created

    def update_file(self, record: FileRecord) -> None:
        """Persist all mutable fields of a record."""
        record.updated_at = utcnow()
        with self.lock:
            conn = self._connection()
            conn.execute(
                """
                UPDATE files SET name = ?, mime_type = ?, size = ?, drive_url = ?,
                    thumbnail_url = ?, duration = ?, status = ?, is_deleted = ?,
                    drive_modified_time = ?, last_synced_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    record.name,
                    record.mime_type,
                    record.size,
                    record.drive_url,
                    record.thumbnail_url,
                    record.duration,
                    record.status.value,
                    1 if record.is_deleted else 0,
                    _ts(record.drive_modified_time),
                    _ts(record.last_synced_at),
                    _ts(record.updated_at),
                    record.id,
                ),
            )
            conn.commit()

    def get_file(self, file_id: str, owner_id: Optional[str] = None) -> Optional[FileRecord]:
        """Get a record by ID, optionally restricted to one owner."""
        query = f"SELECT {_FILE_COLUMNS} FROM files WHERE id = ?"
        params: tuple = (file_id,)
        if owner_id is not None:
            query += " AND owner_id = ?"
            params = (file_id, owner_id)

        with self.lock:
            row = self._connection().execute(query, params).fetchone()
        return self._row_to_file(row) if row else None

    def get_by_drive_id(self, drive_file_id: str) -> Optional[FileRecord]:
        """Get a record by its Drive file ID."""
        with self.lock:
            row = self._connection().execute(
                f"SELECT {_FILE_COLUMNS} FROM files WHERE drive_file_id = ?",
                (drive_file_id,),
            ).fetchone()
        return self._row_to_file(row) if row else None

    def list_files(
        self,
        owner_id: str,
        include_deleted: bool = False,
        status: Optional[FileStatus] = None,
    ) -> list[FileRecord]:
        """List an owner's records, newest first."""
        query = f"SELECT {_FILE_COLUMNS} FROM files WHERE owner_id = ?"
        params: list[object] = [owner_id]
        if not include_deleted:
            query += " AND is_deleted = 0"
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY created_at DESC"

        with self.lock:
            rows = self._connection().execute(query, params).fetchall()
        return [self._row_to_file(row) for row in rows]

    def count_files(self, owner_id: str) -> int:
        """Number of live records for an owner."""
        with self.lock:
            cursor = self._connection().execute(
                "SELECT COUNT(*) FROM files WHERE owner_id = ? AND is_deleted = 0",
                (owner_id,),
            )
            return cursor.fetchone()[0]

    def delete_file(self, file_id: str) -> None:
        """Permanently remove a record."""
        with self.lock:
            conn = self._connection()
            conn.execute("DELETE FROM files WHERE id = ?", (file_id,))
            conn.commit()
        logger.info(f"Deleted file record {file_id}")

    # Upload requests

    def get_upload_request(self, owner_id: str, request_id: str) -> Optional[UploadRequest]:
        """Look up an idempotency key."""
        with self.lock:
            row = self._connection().execute(
                """
                SELECT owner_id, request_id, session_handle, file_name, file_size,
                       mime_type, drive_file_id, created_at
                FROM upload_requests WHERE owner_id = ? AND request_id = ?
                """,
                (owner_id, request_id),
            ).fetchone()
        if not row:
            return None
        return UploadRequest(
            owner_id=row[0],
            request_id=row[1],
            session_handle=row[2],
            file_name=row[3],
            file_size=row[4],
            mime_type=row[5],
            drive_file_id=row[6],
            created_at=datetime.fromisoformat(row[7]),
        )

    def save_upload_request(self, request: UploadRequest) -> None:
        """Bind an idempotency key to a session handle."""
        with self.lock:
            conn = self._connection()
            conn.execute(
                """
                INSERT OR REPLACE INTO upload_requests
                (owner_id, request_id, session_handle, file_name, file_size,
                 mime_type, drive_file_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    request.owner_id,
                    request.request_id,
                    request.session_handle,
                    request.file_name,
                    request.file_size,
                    request.mime_type,
                    request.drive_file_id,
                    _ts(request.created_at),
                ),
            )
            conn.commit()

    def complete_upload_request(self, owner_id: str, request_id: str, drive_file_id: str) -> None:
        """Record the Drive file an idempotency key resolved to."""
        with self.lock:
            conn = self._connection()
            conn.execute(
                "UPDATE upload_requests SET drive_file_id = ? WHERE owner_id = ? AND request_id = ?",
                (drive_file_id, owner_id, request_id),
            )
            conn.commit()

    # Sync logs

    def start_sync(self, owner_id: str) -> SyncLog:
        """Open a sync log entry."""
        started_at = utcnow()
        with self.lock:
            conn = self._connection()
            cursor = conn.execute(
                "INSERT INTO sync_logs (owner_id, started_at) VALUES (?, ?)",
                (owner_id, _ts(started_at)),
            )
            conn.commit()
            log_id = cursor.lastrowid
        return SyncLog(id=log_id, owner_id=owner_id, started_at=started_at)

    def finish_sync(self, log: SyncLog) -> None:
        """Close a sync log entry with its results."""
        log.completed_at = utcnow()
        with self.lock:
            conn = self._connection()
            conn.execute(
                """
                UPDATE sync_logs SET completed_at = ?, files_added = ?, files_updated = ?,
                    files_deleted = ?, error = ?
                WHERE id = ?
                """,
                (
                    _ts(log.completed_at),
                    log.files_added,
                    log.files_updated,
                    log.files_deleted,
                    log.error,
                    log.id,
                ),
            )
            conn.commit()

    def last_sync(self, owner_id: str) -> Optional[SyncLog]:
        """Most recent sync log for an owner."""
        with self.lock:
            row = self._connection().execute(
                """
                SELECT id, owner_id, started_at, completed_at, files_added,
                       files_updated, files_deleted, error
                FROM sync_logs WHERE owner_id = ? ORDER BY id DESC LIMIT 1
                """,
                (owner_id,),
            ).fetchone()
        if not row:
            return None
        return SyncLog(
            id=row[0],
            owner_id=row[1],
            started_at=datetime.fromisoformat(row[2]),
            completed_at=_parse_ts(row[3]),
            files_added=row[4],
            files_updated=row[5],
            files_deleted=row[6],
            error=row[7],
        )

    def close(self) -> None:
        """Close database connection."""
        with self.lock:
            if self.conn:
                self.conn.close()
                self.conn = None

    @staticmethod
    def new_id() -> str:
        """Generate a record ID."""
        return uuid.uuid4().hex

    def _file_to_row(self, f: FileRecord) -> tuple:
        return (
            f.id,
            f.owner_id,
            f.drive_file_id,
            f.name,
            f.mime_type,
            f.size,
            f.drive_url,
            f.thumbnail_url,
            f.duration,
            f.status.value,
            1 if f.is_deleted else 0,
            _ts(f.drive_modified_time),
            _ts(f.last_synced_at),
            _ts(f.created_at),
            _ts(f.updated_at),
        )

    def _row_to_file(self, row: tuple) -> FileRecord:
        """Convert database row to FileRecord."""
        return FileRecord(
            id=row[0],
            owner_id=row[1],
            drive_file_id=row[2],
            name=row[3],
            mime_type=row[4],
            size=row[5],
            drive_url=row[6],
            thumbnail_url=row[7],
            duration=row[8],
            status=FileStatus(row[9]),
            is_deleted=bool(row[10]),
            drive_modified_time=_parse_ts(row[11]),
            last_synced_at=_parse_ts(row[12]),
            created_at=datetime.fromisoformat(row[13]),
            updated_at=datetime.fromisoformat(row[14]),
        )

    def __enter__(self) -> "FileStore":
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()
