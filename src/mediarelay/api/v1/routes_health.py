"""Liveness and health endpoints."""

from fastapi import APIRouter

from mediarelay.core.config import settings

router = APIRouter()


@router.get("/")
async def liveness() -> dict:
    """Liveness probe."""
    return {"status": "ok"}


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns service status, name, and version information. The remote
    store is not contacted; a health check must not open FTP sessions.

    Returns:
        dict: Health status response with status, service, and version fields
    """
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
    }
