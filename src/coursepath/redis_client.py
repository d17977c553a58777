"""Redis connection pool.

Redis only backs the streak display cache and reward notifications, so the
service runs without it: an empty URL leaves the pool unset and callers get
``None`` from :func:`get_optional_redis`.
"""

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()

_pool: redis.Redis | None = None


async def init_redis(url: str | None) -> None:
    """Initialize the Redis connection pool, or disable Redis when ``url`` is empty."""
    global _pool  # noqa: PLW0603
    if not url:
        logger.info("redis_disabled")
        _pool = None
        return
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_optional_redis() -> redis.Redis | None:
    """Get the Redis client or None (FastAPI dependency for cache-only callers)."""
    return _pool
