"""Rich formatting utilities for terminal output."""

from typing import Any, Iterable, Optional

from humanize import naturalsize
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from ..store.models import FileRecord

console = Console()


def print_success(message: str) -> None:
    """Print success message."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print error message."""
    console.print(f"[red]✗[/red] {message}", style="red")


def print_warning(message: str) -> None:
    """Print warning message."""
    console.print(f"[yellow]⚠[/yellow] {message}", style="yellow")


def print_info(message: str) -> None:
    """Print info message."""
    console.print(f"[blue]ℹ[/blue] {message}")


def print_panel(title: str, content: str, style: str = "blue") -> None:
    """Print content in a panel.

    Args:
        title: Panel title
        content: Panel content
        style: Panel border style
    """
    console.print(Panel(content, title=title, border_style=style))


def create_upload_progress() -> Progress:
    """Create a progress display for byte transfers.

    Returns:
        Configured Progress instance
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeRemainingColumn(),
        console=console,
    )


def create_table(title: Optional[str] = None, **kwargs: Any) -> Table:
    """Create a Rich table with common styling.

    Args:
        title: Optional table title
        **kwargs: Additional Table arguments

    Returns:
        Configured Table instance
    """
    return Table(title=title, show_header=True, header_style="bold cyan", **kwargs)


def files_table(records: Iterable[FileRecord], title: Optional[str] = None) -> Table:
    """Table of file records."""
    table = create_table(title=title)
    table.add_column("ID", style="cyan", width=12)
    table.add_column("Name", style="white")
    table.add_column("Type", style="magenta", width=8)
    table.add_column("Size", style="green", width=10)
    table.add_column("Status", style="yellow", width=13)
    table.add_column("Created", style="dim", width=16)

    for record in records:
        name = record.name if not record.is_deleted else f"[strike]{record.name}[/strike]"
        table.add_row(
            record.id[:12],
            name,
            record.media_type,
            naturalsize(record.size) if record.size is not None else "-",
            record.status.value,
            record.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    return table
