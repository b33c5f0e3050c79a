"""Wiring of the upload pipeline from settings."""

from dataclasses import dataclass
from typing import Any

from .auth.service import DriveServiceFactory
from .common.rate_limiter import SlidingWindowRateLimiter
from .common.retry import RetryPolicy
from .config.settings import Settings
from .drive.files import DriveFiles
from .drive.folders import FolderResolver
from .store.file_store import FileStore
from .sync.drive_sync import DriveSync
from .upload.dispatcher import UploadDispatcher
from .upload.orchestrator import ResumableUploader
from .upload.reconciler import CompletionReconciler
from .upload.session import SessionInitiator
from .upload.transmitter import ChunkTransmitter


@dataclass
class Services:
    """Long-lived collaborators shared by the CLI and the HTTP server."""

    settings: Settings
    store: FileStore
    folders: FolderResolver
    drive_files: DriveFiles
    rate_limiter: SlidingWindowRateLimiter
    initiator: SessionInitiator
    transmitter: ChunkTransmitter
    reconciler: CompletionReconciler
    dispatcher: UploadDispatcher
    uploader: ResumableUploader
    sync: DriveSync

    def close(self) -> None:
        self.store.close()


def build_services(settings: Settings, http: Any = None) -> Services:
    """Assemble services from settings.

    Args:
        settings: Application settings
        http: Authorized HTTP session; created from the service account when omitted

    Raises:
        ConfigError: If no service account is configured
    """
    factory = DriveServiceFactory.from_settings(settings)
    if http is None:
        http = factory.create_session()

    store = FileStore(settings.db_path)
    mime_types = tuple(settings.supported_mime_types)
    folders = FolderResolver(factory, settings.shared_drive_id, settings.root_folder_id)
    drive_files = DriveFiles(factory, folders, mime_types)
    rate_limiter = SlidingWindowRateLimiter(
        settings.upload_window_seconds,
        settings.upload_max_requests,
        settings.upload_max_bytes,
    )
    initiator = SessionInitiator(
        http,
        folders,
        store=store,
        rate_limiter=rate_limiter,
        supported_mime_types=mime_types,
        max_file_size=settings.max_file_size,
        timeout=settings.chunk_timeout,
    )
    transmitter = ChunkTransmitter(http, timeout=settings.chunk_timeout)
    reconciler = CompletionReconciler(store, drive_files, transmitter, folders)
    dispatcher = UploadDispatcher(settings.instant_limit, settings.medium_limit)
    uploader = ResumableUploader(
        initiator,
        transmitter,
        reconciler,
        retry_policy=RetryPolicy(
            max_attempts=settings.max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        ),
        chunk_size=settings.chunk_size,
        drive_files=drive_files,
        dispatcher=dispatcher,
    )

    return Services(
        settings=settings,
        store=store,
        folders=folders,
        drive_files=drive_files,
        rate_limiter=rate_limiter,
        initiator=initiator,
        transmitter=transmitter,
        reconciler=reconciler,
        dispatcher=dispatcher,
        uploader=uploader,
        sync=DriveSync(store, drive_files),
    )
