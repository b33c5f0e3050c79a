"""Files command."""

from typing import Optional

import typer
from humanize import naturalsize

from ..common.exceptions import MediaHubError
from ..config.settings import get_settings
from ..store.file_store import FileStore
from ..store.models import FileStatus
from .formatters import console, files_table, print_error, print_info
from .options import OwnerOption, resolve_owner


def files(
    owner_email: str = OwnerOption,
    include_deleted: bool = typer.Option(
        False, "--include-deleted", help="Also list files removed from Drive"
    ),
    status: Optional[FileStatus] = typer.Option(
        None, "--status", "-s", case_sensitive=False, help="Only files with this status"
    ),
) -> None:
    """List uploaded files."""
    settings = get_settings()

    try:
        owner = resolve_owner(owner_email)
        with FileStore(settings.db_path) as store:
            records = store.list_files(owner.id, include_deleted=include_deleted, status=status)
            last = store.last_sync(owner.id)
    except MediaHubError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if not records:
        print_info("No files found")
        return

    console.print(files_table(records, title=f"Files for {owner.email}"))
    total_size = sum(r.size or 0 for r in records)
    print_info(f"{len(records)} file(s), {naturalsize(total_size)}")
    if last is not None and last.completed_at is not None:
        print_info(f"Last synced {last.completed_at:%Y-%m-%d %H:%M} UTC")
