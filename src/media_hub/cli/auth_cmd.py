"""Service account commands."""

import typer
from humanize import naturalsize

from ..auth.service import DriveServiceFactory
from ..common.exceptions import MediaHubError
from ..config.settings import get_settings
from ..drive.files import DriveFiles
from ..drive.folders import FolderResolver
from .formatters import print_error, print_info, print_panel, print_success

auth_app = typer.Typer(help="Check Google Drive service account access")


@auth_app.command("check")
def check() -> None:
    """Test the service account connection to Drive."""
    settings = get_settings()

    try:
        factory = DriveServiceFactory.from_settings(settings)
        folders = FolderResolver(factory, settings.shared_drive_id, settings.root_folder_id)
        about = DriveFiles(factory, folders).test_connection()
    except MediaHubError as e:
        print_error(f"Connection failed: {e}")
        raise typer.Exit(1)

    user = about["user"]
    quota = about["storageQuota"]
    print_success("Connected to Google Drive")

    lines = [
        f"Account: {user.get('emailAddress', 'unknown')}",
        f"Name: {user.get('displayName', 'unknown')}",
    ]
    if quota.get("usage"):
        lines.append(f"Usage: {naturalsize(int(quota['usage']))}")
    if quota.get("limit"):
        lines.append(f"Limit: {naturalsize(int(quota['limit']))}")
    print_panel("Service Account", "\n".join(lines), style="green")

    if settings.shared_drive_id:
        print_info(f"Shared drive: {settings.shared_drive_id}")
    else:
        print_info("No shared drive configured; files count against the service account quota")
