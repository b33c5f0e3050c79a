"""Upload and resume commands."""

import mimetypes
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

import typer
from humanize import naturalsize
from rich.progress import Progress, TaskID

from ..common.constants import CHUNK_ALIGNMENT
from ..common.exceptions import MediaHubError
from ..config.settings import get_settings
from ..services import Services, build_services
from ..store.models import FileRecord, Owner
from ..upload.models import ProgressEvent, UploadSession, UploadState, UploadTier
from ..upload.session import check_session_handle
from .formatters import (
    console,
    create_table,
    create_upload_progress,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from .options import OwnerOption, drive_folder_url, resolve_owner


@dataclass
class UploadOutcome:
    """Result of one file in a batch."""

    path: Path
    record: Optional[FileRecord] = None
    error: Optional[str] = None
    ambiguous: bool = False
    duplicate: bool = False
    session_handle: Optional[str] = None


def guess_mime_type(path: Path) -> str:
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type or "application/octet-stream"


def _follow(
    events: Iterator[ProgressEvent],
    progress: Progress,
    task: TaskID,
    name: str,
    outcome: Optional[UploadOutcome] = None,
) -> ProgressEvent:
    """Render a progress sequence on one task and return the last event.

    A failed upload leaves its session handle on ``outcome``.
    """
    final: Optional[ProgressEvent] = None
    for event in events:
        final = event
        if outcome is not None and event.session_handle:
            outcome.session_handle = event.session_handle
        if event.state == UploadState.RETRY_WAIT:
            progress.update(task, description=f"[yellow]{name} (retry {event.attempt})")
        elif event.state == UploadState.RECONCILED:
            progress.update(task, completed=event.total_size, description=f"[green]{name}")
        elif event.state == UploadState.FAILED:
            progress.update(task, description=f"[red]{name}")
        else:
            progress.update(task, completed=event.bytes_confirmed, description=f"[cyan]{name}")
    if final is None:
        raise MediaHubError(f"No progress reported for {name}")
    return final


def _upload_one(
    services: Services,
    owner: Owner,
    path: Path,
    progress: Progress,
    cancel: threading.Event,
    request_id: Optional[str],
) -> UploadOutcome:
    size = path.stat().st_size
    task = progress.add_task(f"[cyan]{path.name}", total=size)
    outcome = UploadOutcome(path=path)
    try:
        with path.open("rb") as source:
            final = _follow(
                services.uploader.upload_any(
                    owner, source, path.name, size, guess_mime_type(path), request_id, cancel
                ),
                progress,
                task,
                path.name,
                outcome,
            )
    except MediaHubError as e:
        progress.update(task, description=f"[red]{path.name}")
        outcome.error = e.user_message
        return outcome

    outcome.record = final.record
    outcome.ambiguous = final.message == "ambiguous"
    outcome.duplicate = final.message == "duplicate"
    return outcome


def print_resume_hints(outcomes: list[UploadOutcome], owner: Owner) -> None:
    """Show how to continue each interrupted chunked upload."""
    for outcome in outcomes:
        if not outcome.error or not outcome.session_handle:
            continue
        print_info(
            f"Resume {outcome.path.name} with:\n"
            f"  media-hub resume '{outcome.session_handle}' '{outcome.path}' "
            f"--owner {owner.email}"
        )


def upload(
    paths: list[Path] = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="Media files to upload"
    ),
    owner_email: str = OwnerOption,
    chunk_size: Optional[int] = typer.Option(
        None, "--chunk-size", help="Chunk size in bytes (multiple of 256 KiB)"
    ),
    request_id: Optional[str] = typer.Option(
        None, "--request-id", help="Idempotency key; only valid with a single file"
    ),
    workers: int = typer.Option(
        3, "--workers", "-w", min=1, help="Files uploaded concurrently"
    ),
) -> None:
    """Upload media files into the owner's Incoming folder."""
    settings = get_settings()

    if request_id and len(paths) > 1:
        print_error("--request-id can only be used with a single file")
        raise typer.Exit(1)
    if chunk_size is not None and (chunk_size <= 0 or chunk_size % CHUNK_ALIGNMENT):
        print_error(f"Chunk size must be a positive multiple of {CHUNK_ALIGNMENT} bytes")
        raise typer.Exit(1)

    try:
        owner = resolve_owner(owner_email)
        services = build_services(settings)
    except MediaHubError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if chunk_size is not None:
        services.uploader.chunk_size = chunk_size

    try:
        groups = services.dispatcher.group((p, p.stat().st_size) for p in paths)
        for path in groups[UploadTier.MANUAL]:
            folder_url = drive_folder_url(services.folders.incoming_folder(owner))
            print_warning(
                f"{path.name} ({naturalsize(path.stat().st_size)}) is too large for "
                f"automatic upload. Add it to {folder_url}"
            )

        pending = groups[UploadTier.INSTANT] + groups[UploadTier.CHUNKED]
        if not pending:
            raise typer.Exit(1 if groups[UploadTier.MANUAL] else 0)

        cancel = threading.Event()
        outcomes: list[UploadOutcome] = []
        progress = create_upload_progress()

        with progress, ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(_upload_one, services, owner, p, progress, cancel, request_id)
                for p in pending
            ]
            try:
                for future in as_completed(futures):
                    outcomes.append(future.result())
            except KeyboardInterrupt:
                cancel.set()
                print_warning("Cancelling, waiting for in-flight chunks...")
                collected = {o.path for o in outcomes}
                for future in futures:
                    if not future.cancel():
                        outcome = future.result()
                        if outcome.path not in collected:
                            outcomes.append(outcome)
                print_resume_hints(outcomes, owner)
                raise typer.Exit(130)

        table = create_table(title="Uploads")
        table.add_column("File", style="white")
        table.add_column("Result", style="cyan")
        table.add_column("Record", style="dim")
        for outcome in sorted(outcomes, key=lambda o: str(o.path)):
            if outcome.error:
                table.add_row(outcome.path.name, f"[red]{outcome.error}", "-")
                continue
            result = "[green]uploaded"
            if outcome.duplicate:
                result = "[yellow]already uploaded"
            elif outcome.ambiguous:
                result = "[yellow]uploaded (matched by name)"
            table.add_row(outcome.path.name, result, outcome.record.id if outcome.record else "-")
        console.print(table)

        failed = sum(1 for o in outcomes if o.error)
        if failed:
            print_resume_hints(outcomes, owner)
            print_error(f"{failed} of {len(outcomes)} uploads failed")
            raise typer.Exit(1)
        print_success(f"Uploaded {len(outcomes)} file(s)")

    except MediaHubError as e:
        print_error(str(e))
        raise typer.Exit(1)
    finally:
        services.close()


def resume(
    session_handle: str = typer.Argument(..., help="Upload session URL"),
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    owner_email: str = OwnerOption,
) -> None:
    """Resume an interrupted upload session."""
    settings = get_settings()

    try:
        owner = resolve_owner(owner_email)
        services = build_services(settings)
    except MediaHubError as e:
        print_error(str(e))
        raise typer.Exit(1)

    size = path.stat().st_size
    try:
        session = UploadSession(
            continuation_handle=check_session_handle(session_handle),
            file_name=path.name,
            total_size=size,
            mime_type=guess_mime_type(path),
            owner_id=owner.id,
        )
        print_info(f"Resuming {path.name} ({naturalsize(size)})")
        progress = create_upload_progress()
        with progress, path.open("rb") as source:
            task = progress.add_task(f"[cyan]{path.name}", total=size)
            final = _follow(
                services.uploader.resume(owner, session, source), progress, task, path.name
            )
        print_success(f"Uploaded {path.name} as record {final.record.id}")
    except MediaHubError as e:
        print_error(str(e))
        raise typer.Exit(1)
    finally:
        services.close()
