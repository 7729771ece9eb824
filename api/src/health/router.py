"""Health check endpoints."""

from fastapi import APIRouter, Request

from src.config import get_settings


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness check: the process is up."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness check: reports which backends the services are running on."""
    settings = get_settings()
    store = getattr(request.app.state, "ttl_store", None)
    return {
        "status": "ready",
        "environment": settings.environment,
        "debug": settings.debug,
        "database": getattr(request.app.state, "cassandra_session", None) is not None,
        "store": store.backend if store is not None else "unavailable",
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
