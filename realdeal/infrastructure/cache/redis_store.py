"""Redis-backed cache store."""

import logging
from typing import Optional

import redis.asyncio as aioredis

from realdeal.domain.repositories import ICacheStore

logger = logging.getLogger(__name__)


class RedisCacheStore(ICacheStore):
    """Stores entries with ``SET key value EX ttl``.

    Namespace eviction walks the keyspace with ``SCAN`` (never ``KEYS``) and
    deletes matches in batches.
    """

    def __init__(self, client: aioredis.Redis, scan_batch: int = 500):
        self.client = client
        self.scan_batch = scan_batch

    async def get(self, key: str) -> Optional[bytes]:
        return await self.client.get(key)

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        await self.client.set(key, value, ex=ttl_seconds)

    async def evict(self, key: str) -> None:
        await self.client.delete(key)

    async def evict_namespace(self, prefix: str) -> int:
        pattern = _escape_glob(prefix) + "*"
        removed = 0
        batch: list[bytes] = []
        async for key in self.client.scan_iter(match=pattern, count=self.scan_batch):
            batch.append(key)
            if len(batch) >= self.scan_batch:
                removed += await self.client.delete(*batch)
                batch = []
        if batch:
            removed += await self.client.delete(*batch)
        logger.debug("Evicted %d Redis keys under %s", removed, prefix)
        return removed


def _escape_glob(text: str) -> str:
    """Escape Redis glob metacharacters so a prefix matches literally."""
    for ch in ("\\", "*", "?", "[", "]"):
        text = text.replace(ch, "\\" + ch)
    return text
