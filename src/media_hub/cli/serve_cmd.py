"""Serve command."""

from typing import Optional

import typer
import uvicorn

from ..common.exceptions import MediaHubError
from ..config.settings import get_settings
from .formatters import print_error, print_info


def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Host to bind to"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind to"),
) -> None:
    """Run the HTTP API."""
    from ..server.app import create_app

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port

    try:
        app = create_app(settings)
    except MediaHubError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if not settings.api_tokens:
        print_info("No API tokens configured; every request will be rejected")

    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())
