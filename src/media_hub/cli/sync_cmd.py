"""Sync command."""

import typer

from ..common.exceptions import MediaHubError
from ..config.settings import get_settings
from ..services import build_services
from .formatters import print_error, print_info, print_panel
from .options import OwnerOption, resolve_owner


def sync(owner_email: str = OwnerOption) -> None:
    """Bring the file index in line with the owner's Drive folder."""
    settings = get_settings()

    try:
        owner = resolve_owner(owner_email)
        services = build_services(settings)
    except MediaHubError as e:
        print_error(str(e))
        raise typer.Exit(1)

    try:
        print_info(f"Syncing {owner.email}...")
        log = services.sync.run(owner)
        summary = f"""
Added: {log.files_added}
Updated: {log.files_updated}
Deleted: {log.files_deleted}
Files tracked: {services.store.count_files(owner.id)}
"""
        print_panel("Sync Summary", summary.strip(), style="green")
    except MediaHubError as e:
        print_error(f"Sync failed: {e}")
        raise typer.Exit(1)
    finally:
        services.close()
