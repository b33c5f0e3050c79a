"""Main CLI application."""

import typer

from ..common.logging import setup_logging
from ..config.settings import get_settings
from .auth_cmd import auth_app
from .config_cmd import config_app
from .files_cmd import files
from .serve_cmd import serve
from .sync_cmd import sync
from .upload_cmd import resume, upload

app = typer.Typer(
    name="media-hub",
    help="Upload media into a Google Drive shared drive",
    add_completion=False,
)

# Register subcommands
app.add_typer(auth_app, name="auth")
app.add_typer(config_app, name="config")

# Add main commands
app.command(name="upload")(upload)
app.command(name="resume")(resume)
app.command(name="sync")(sync)
app.command(name="files")(files)
app.command(name="serve")(serve)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Media Hub uploader."""
    settings = get_settings()
    log_level = "DEBUG" if verbose else settings.log_level
    setup_logging(level=log_level, log_file=settings.log_file)
