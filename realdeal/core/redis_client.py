"""Async Redis client shared across the application.

Used as the backing store of the cache layer.  Values are opaque bytes, so
the client is created without ``decode_responses``.
"""

from typing import Optional

import redis.asyncio as aioredis

from realdeal.core.config import settings

_client: Optional[aioredis.Redis] = None


def get_redis() -> aioredis.Redis:
    """Return the process-wide Redis client, creating it on first use."""
    global _client
    if _client is None:
        _client = aioredis.from_url(
            settings.redis_url,
            decode_responses=False,
            socket_timeout=settings.redis_socket_timeout,
            socket_connect_timeout=settings.redis_socket_timeout,
        )
    return _client


async def close_redis() -> None:
    """Close the shared client on shutdown."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
