"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running
and dependencies (database, Redis) are reachable. Redis is optional:
without it rate limiting is off, so it only degrades the status.
"""

from fastapi import APIRouter
from sqlalchemy import text

from wayfarer import __version__
from wayfarer.cache.redis import get_redis
from wayfarer.db.engine import engine

router = APIRouter()


@router.get("/health")
async def health_check():
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    # Anonymous connection: nothing bound, and no row-secured table touched.
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    redis = get_redis()
    if redis is None:
        checks["redis"] = "unavailable"
    else:
        try:
            await redis.ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {e}"

    if checks["database"] != "ok":
        status = "unhealthy"
    elif checks["redis"] != "ok":
        status = "degraded"
    else:
        status = "healthy"

    return {"status": status, **checks}
