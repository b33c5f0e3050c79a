"""FastAPI application."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..common.exceptions import MediaHubError, RateLimitError
from ..common.logging import get_logger
from ..config.settings import Settings, get_settings
from ..services import Services, build_services
from .routes import router
from .schemas import HealthResponse

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[Services] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to build services from (global settings when omitted)
        services: Pre-built services, mainly for tests
    """
    if services is None:
        services = build_services(settings or get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        services.close()

    app = FastAPI(
        title="Media Hub",
        description="Resumable media uploads into a Google Drive shared drive",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    @app.exception_handler(MediaHubError)
    async def handle_media_hub_error(request: Request, exc: MediaHubError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc}")

        headers = {}
        if isinstance(exc, RateLimitError):
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.user_message, "message": exc.message, "details": exc.details},
            headers=headers,
        )

    app.include_router(router)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy", version=__version__)

    return app
