"""
Health check endpoints.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
import redis.asyncio as redis

from config import settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    Returns overall system health status.
    """
    health_status = {
        "status": "healthy",
        "api": "up",
        "database": "unknown",
        "redis": "unknown",
        "aggregate_cache": settings.AGGREGATE_CACHE_BACKEND,
    }

    # Check database connection
    try:
        from database import engine
        from sqlalchemy import text
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["database"] = "up"
    except Exception as e:
        health_status["database"] = f"down: {str(e)}"
        health_status["status"] = "degraded"

    # Redis only matters when it backs the aggregate cache
    if settings.AGGREGATE_CACHE_BACKEND == "redis":
        try:
            r = redis.from_url(settings.REDIS_URL)
            await r.ping()
            await r.aclose()
            health_status["redis"] = "up"
        except Exception as e:
            health_status["redis"] = f"down: {str(e)}"
            health_status["status"] = "degraded"
    else:
        health_status["redis"] = "not used"

    return health_status


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Kubernetes-style readiness probe."""
    missing = []
    if getattr(request.app.state, "services", None) is None:
        missing.append("services")

    if missing:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "missing": missing},
        )
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}
