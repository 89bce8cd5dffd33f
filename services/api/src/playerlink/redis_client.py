"""Optional Redis connection pool.

Redis backs the per-IP rate limit, the per-recipient mail budget and the
shared transfer-token cache. A blank redis_url runs the service without it:
those features fall back to off or to process-local state.
"""

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()

_pool: redis.Redis | None = None


async def init_redis(url: str) -> None:
    """Open the pool, or leave Redis disabled when no URL is configured."""
    global _pool  # noqa: PLW0603
    if not url.strip():
        logger.info("redis_disabled")
        return
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )


async def close_redis() -> None:
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis:
    """Get the Redis client.

    Raises:
        RuntimeError: If Redis is disabled or not yet initialized.
    """
    if _pool is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _pool


def redis_enabled() -> bool:
    return _pool is not None
