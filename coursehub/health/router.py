"""Health check endpoints.

``/health/ready`` reports what CourseHub can currently serve: the catalog
and progress need Cassandra, checkout needs a Stripe key and reconciliation
needs the webhook signing secret.
"""

from fastapi import APIRouter, Request

from coursehub.config import get_settings
from coursehub.core.redis import get_redis


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe; ``degraded`` until the database session exists."""
    settings = get_settings()
    state = request.app.state
    database = getattr(state, "cassandra_session", None) is not None
    return {
        "status": "ready" if database else "degraded",
        "environment": settings.environment,
        "debug": settings.debug,
        "database": database,
        "redis": get_redis() is not None,
        "identity_provider": getattr(state, "identity_provider", None) is not None,
        "payments": bool(settings.stripe_secret_key),
        "webhooks": bool(settings.stripe_webhook_secret),
    }


@router.get("")
async def health() -> dict[str, str]:
    """Application name, version and environment."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
