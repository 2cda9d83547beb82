"""Main application entrypoint for the Media Relay gateway."""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mediarelay.api.middleware import HTTPErrorLoggingMiddleware
from mediarelay.api.v1 import routes_health
from mediarelay.api.v1.routes_upload import router as upload_router
from mediarelay.core.config import Settings, settings as default_settings
from mediarelay.core.logging import setup_logging
from mediarelay.models.upload import ErrorResponse
from mediarelay.services.upload.pipeline import UploadPipeline
from mediarelay.services.upload.rate_limit import InMemoryRateLimitStore
from mediarelay.services.upload.transfer import TransferClient
from mediarelay.services.upload.validation import UploadPolicy
from mediarelay.storage.factory import get_buffer_backend

logger = logging.getLogger(__name__)


def build_upload_pipeline(settings: Settings = default_settings) -> UploadPipeline:
    """Wire the upload pipeline from settings."""
    return UploadPipeline(
        policy=UploadPolicy.from_settings(settings),
        rate_limiter=InMemoryRateLimitStore(
            max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=settings.rate_limit_window_seconds,
        ),
        buffer_backend=get_buffer_backend(settings),
        transfer_client=TransferClient.from_settings(settings),
        public_base_url=settings.PUBLIC_BASE_URL,
        remote_directory=settings.FTP_UPLOAD_PATH,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled error: {exc}",
        extra={"method": request.method, "path": request.url.path},
        exc_info=exc,
    )
    body = ErrorResponse(error="Internal server error", code="InternalError")
    return JSONResponse(status_code=500, content=body.model_dump())


def create_app(
    settings: Settings = default_settings,
    upload_pipeline: Optional[UploadPipeline] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to build from
        upload_pipeline: Pre-built pipeline; built from settings when omitted

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    # Initialize logging first
    setup_logging()

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
    )

    app.state.upload_pipeline = upload_pipeline or build_upload_pipeline(settings)

    app.add_middleware(HTTPErrorLoggingMiddleware)
    if settings.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
            expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
        )

    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(routes_health.router, tags=["health"])
    app.include_router(upload_router)

    return app


# Export app instance for ASGI servers
app = create_app()
