"""In-process cache store for single-node deployments and local development."""

import time
from typing import Callable, Optional

from cachetools import TLRUCache

from realdeal.domain.repositories import ICacheStore

DEFAULT_MAXSIZE = 10_000


def _expires_at(_key: str, entry: tuple[bytes, int], now: float) -> float:
    return now + entry[1]


class InMemoryCacheStore(ICacheStore):
    """``TLRUCache`` holding ``(value, ttl_seconds)`` so each entry keeps its own TTL tier.

    Expired entries are purged on every write and the least recently used
    entry goes first once ``maxsize`` is reached.  All methods run without
    awaiting, so they are atomic with respect to other coroutines on the
    same event loop.
    """

    def __init__(
        self,
        maxsize: int = DEFAULT_MAXSIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._cache: TLRUCache = TLRUCache(maxsize=maxsize, ttu=_expires_at, timer=clock)

    async def get(self, key: str) -> Optional[bytes]:
        entry = self._cache.get(key)
        return entry[0] if entry is not None else None

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        self._cache[key] = (value, ttl_seconds)

    async def evict(self, key: str) -> None:
        self._cache.pop(key, None)

    async def evict_namespace(self, prefix: str) -> int:
        self._cache.expire()
        doomed = [k for k in self._cache if k.startswith(prefix)]
        for key in doomed:
            del self._cache[key]
        return len(doomed)

    def __len__(self) -> int:
        self._cache.expire()
        return len(self._cache)
