"""Redis connection — rate-limit counters and the health check.

Learn: One process-wide async client, opened in the app lifespan. Redis
is optional: if it can't be reached at startup the client stays None,
rate limiting is skipped and /health reports it as unavailable. Nothing
in the auth flows depends on it.
"""

from typing import Optional

import redis.asyncio as aioredis

from wayfarer.config import settings

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis(url: Optional[str] = None) -> aioredis.Redis:
    """Initialize the Redis connection pool and verify it answers."""
    global _redis
    client = aioredis.from_url(
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise
    _redis = client
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> Optional[aioredis.Redis]:
    """The shared client, or None when Redis is not in use."""
    return _redis


def set_redis(client: Optional[aioredis.Redis]) -> None:
    """Swap the shared client (tests inject a fake here)."""
    global _redis
    _redis = client
