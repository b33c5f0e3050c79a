"""Configuration commands."""

from typing import Optional

import typer
from humanize import naturalsize

from ..config.settings import get_settings
from .formatters import console, create_table

config_app = typer.Typer(help="Inspect configuration settings")


def mask(value: Optional[str], visible: int = 4) -> str:
    """Hide all but the first few characters of a secret."""
    if not value:
        return "None"
    if len(value) <= visible:
        return "*" * len(value)
    return value[:visible] + "*" * 8


@config_app.command()
def show() -> None:
    """Show current configuration."""
    settings = get_settings()

    table = create_table(title="Configuration")
    table.add_column("Setting", style="cyan", width=24)
    table.add_column("Value", style="white")

    table.add_row("Data directory", str(settings.data_dir))
    table.add_row("Service account key", mask(settings.service_account_key))
    table.add_row(
        "Service account file",
        str(settings.service_account_file) if settings.service_account_file else "None",
    )
    table.add_row("Shared drive", settings.shared_drive_id or "None")
    table.add_row("Root folder", settings.root_folder_id or "(by name)")
    table.add_row("Instant limit", naturalsize(settings.instant_limit, binary=True))
    table.add_row("Chunked limit", naturalsize(settings.medium_limit, binary=True))
    table.add_row("Max file size", naturalsize(settings.max_file_size, binary=True))
    table.add_row("Chunk size", naturalsize(settings.chunk_size, binary=True))
    table.add_row("Chunk timeout (s)", str(settings.chunk_timeout))
    table.add_row("Attempts per chunk", str(settings.max_attempts))
    table.add_row(
        "Upload limit",
        f"{settings.upload_max_requests} / "
        f"{naturalsize(settings.upload_max_bytes, binary=True)} per "
        f"{settings.upload_window_seconds}s",
    )
    table.add_row("API tokens", ", ".join(mask(t) for t in settings.api_tokens) or "None")
    table.add_row("Server", f"{settings.host}:{settings.port}")
    table.add_row("Log level", settings.log_level)
    table.add_row("Log file", str(settings.log_file) if settings.log_file else "None")

    console.print(table)
