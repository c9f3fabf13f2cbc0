"""Redis client management."""

from typing import Optional
import redis.asyncio as redis


async def create_redis_client(url: Optional[str] = None) -> redis.Redis:
    """Create a Redis client for the worker process.

    The caller owns the client and must release it with ``close_redis``.

    Args:
        url: Redis URL (defaults to settings.REDIS_URL)

    Returns:
        Redis async client
    """
    from ..config import settings

    url = url or settings.REDIS_URL
    return redis.from_url(url, decode_responses=True)


async def close_redis(client: Optional[redis.Redis]) -> None:
    """Close Redis connection gracefully."""
    if client is not None:
        await client.aclose()


__all__ = ["create_redis_client", "close_redis"]
