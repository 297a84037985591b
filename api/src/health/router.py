"""Health check endpoints."""

from fastapi import APIRouter, Request

from src.config import get_settings
from src.core.redis import get_redis


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - reports the backing services the API is wired to."""
    settings = get_settings()
    comment_service = getattr(request.app.state, "comment_service", None)
    return {
        "status": "ready" if comment_service is not None else "degraded",
        "environment": settings.environment,
        "cassandra": comment_service is not None,
        "redis": get_redis() is not None,
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
