"""Split content/count cache coordinator.

Every paginated listing is cached as two independent entries: the items of
one page (``*Content``) and the total element count of the listing
(``*Count``).  ``get_page`` pairs them back into a ``Page``.

Consistency comes from eager eviction: each mutation has one row in
``EVICTIONS`` naming every cache it invalidates.  Collection caches are
dropped wholesale, single-entity caches by key.  TTLs are only a staleness
backstop.  A read that misses, loads, and writes back while a writer evicts
can leave a stale entry behind until its TTL runs out; that window is
accepted.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import TypeAdapter, ValidationError

from realdeal.domain.entities import Comment, Page, Post
from realdeal.domain.exceptions import InvalidInputError, StoreUnavailableError
from realdeal.domain.repositories import ICacheStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_SEPARATOR = "::"


class CacheName(str, Enum):
    POSTS_CONTENT = "postsContent"
    POSTS_COUNT = "postsCount"
    USER_POSTS_CONTENT = "userPostsContent"
    USER_POSTS_COUNT = "userPostsCount"
    LIKED_POSTS_CONTENT = "likedPostsContent"
    LIKED_POSTS_COUNT = "likedPostsCount"
    STARRED_POSTS_CONTENT = "starredPostsContent"
    STARRED_POSTS_COUNT = "starredPostsCount"
    SEARCH_POSTS_CONTENT = "searchPostsContent"
    SEARCH_POSTS_COUNT = "searchPostsCount"
    SINGLE_POST = "singlePost"
    POST_LIKES = "postLikes"
    POST_STARS = "postStars"
    COMMENT_LIKES = "commentLikes"
    COMMENT_CONTENT = "commentContent"
    COMMENT_COUNT = "commentCount"
    ALL_COMMENTS = "allComments"


class Mutation(str, Enum):
    POST_CREATED = "post_created"
    POST_UPDATED = "post_updated"
    POST_DELETED = "post_deleted"
    POST_LIKED = "post_liked"
    POST_STARRED = "post_starred"
    POST_GENRES_ASSIGNED = "post_genres_assigned"
    COMMENT_CREATED = "comment_created"
    COMMENT_UPDATED = "comment_updated"
    COMMENT_DELETED = "comment_deleted"
    COMMENT_LIKED = "comment_liked"


# TTL tiers by volatility
TTL_LONG = timedelta(minutes=30)
TTL_MEDIUM = timedelta(minutes=15)
TTL_DEFAULT = timedelta(minutes=10)
TTL_SHORT = timedelta(minutes=5)


@dataclass(frozen=True)
class CacheSpec:
    name: CacheName
    ttl: timedelta
    adapter: TypeAdapter

    @property
    def ttl_seconds(self) -> int:
        return int(self.ttl.total_seconds())


_POST_LIST = TypeAdapter(list[Post])
_COMMENT_LIST = TypeAdapter(list[Comment])
_POST = TypeAdapter(Post)
_COUNT = TypeAdapter(int)
_FLAG = TypeAdapter(bool)

CACHE_SPECS: dict[CacheName, CacheSpec] = {
    spec.name: spec
    for spec in (
        # rarely-changing aggregates
        CacheSpec(CacheName.POSTS_COUNT, TTL_LONG, _COUNT),
        CacheSpec(CacheName.SINGLE_POST, TTL_LONG, _POST),
        # per-user lookups
        CacheSpec(CacheName.USER_POSTS_CONTENT, TTL_MEDIUM, _POST_LIST),
        CacheSpec(CacheName.USER_POSTS_COUNT, TTL_MEDIUM, _COUNT),
        CacheSpec(CacheName.POST_LIKES, TTL_MEDIUM, _FLAG),
        CacheSpec(CacheName.POST_STARS, TTL_MEDIUM, _FLAG),
        CacheSpec(CacheName.COMMENT_LIKES, TTL_MEDIUM, _FLAG),
        # frequently mutated content
        CacheSpec(CacheName.POSTS_CONTENT, TTL_SHORT, _POST_LIST),
        CacheSpec(CacheName.COMMENT_CONTENT, TTL_SHORT, _COMMENT_LIST),
        CacheSpec(CacheName.ALL_COMMENTS, TTL_SHORT, _COMMENT_LIST),
        CacheSpec(CacheName.COMMENT_COUNT, TTL_DEFAULT, _COUNT),
        CacheSpec(CacheName.LIKED_POSTS_CONTENT, TTL_DEFAULT, _POST_LIST),
        CacheSpec(CacheName.LIKED_POSTS_COUNT, TTL_DEFAULT, _COUNT),
        CacheSpec(CacheName.STARRED_POSTS_CONTENT, TTL_DEFAULT, _POST_LIST),
        CacheSpec(CacheName.STARRED_POSTS_COUNT, TTL_DEFAULT, _COUNT),
        CacheSpec(CacheName.SEARCH_POSTS_CONTENT, TTL_DEFAULT, _POST_LIST),
        CacheSpec(CacheName.SEARCH_POSTS_COUNT, TTL_DEFAULT, _COUNT),
    )
}


@dataclass(frozen=True)
class Eviction:
    """One invalidation step.

    ``key`` is a ``str.format`` template filled from the mutation's
    parameters.  Without a key every entry of the cache goes; with
    ``prefix=True`` every entry whose key starts with the rendered template.
    """

    cache: CacheName
    key: Optional[str] = None
    prefix: bool = False

    def render(self, params: dict[str, Any]) -> Optional[str]:
        return self.key.format(**params) if self.key is not None else None


def _all(*names: CacheName) -> tuple[Eviction, ...]:
    return tuple(Eviction(name) for name in names)


_POST_LISTINGS = (
    CacheName.POSTS_CONTENT,
    CacheName.POSTS_COUNT,
    CacheName.USER_POSTS_CONTENT,
    CacheName.USER_POSTS_COUNT,
    CacheName.LIKED_POSTS_CONTENT,
    CacheName.LIKED_POSTS_COUNT,
    CacheName.STARRED_POSTS_CONTENT,
    CacheName.STARRED_POSTS_COUNT,
    CacheName.SEARCH_POSTS_CONTENT,
    CacheName.SEARCH_POSTS_COUNT,
)

# Listings whose items carry denormalized like/star counters.
_POST_CONTENT_LISTINGS = (
    CacheName.POSTS_CONTENT,
    CacheName.USER_POSTS_CONTENT,
    CacheName.LIKED_POSTS_CONTENT,
    CacheName.STARRED_POSTS_CONTENT,
    CacheName.SEARCH_POSTS_CONTENT,
)

EVICTIONS: dict[Mutation, tuple[Eviction, ...]] = {
    Mutation.POST_CREATED: _all(
        CacheName.POSTS_CONTENT,
        CacheName.POSTS_COUNT,
        CacheName.USER_POSTS_CONTENT,
        CacheName.USER_POSTS_COUNT,
        CacheName.SEARCH_POSTS_CONTENT,
        CacheName.SEARCH_POSTS_COUNT,
    ),
    Mutation.POST_UPDATED: _all(*_POST_CONTENT_LISTINGS, CacheName.SEARCH_POSTS_COUNT)
    + (Eviction(CacheName.SINGLE_POST, "{post_id}"),),
    Mutation.POST_DELETED: _all(
        *_POST_LISTINGS,
        CacheName.COMMENT_CONTENT,
        CacheName.COMMENT_COUNT,
        CacheName.ALL_COMMENTS,
    )
    + (
        Eviction(CacheName.SINGLE_POST, "{post_id}"),
        Eviction(CacheName.POST_LIKES, "{post_id}:", prefix=True),
        Eviction(CacheName.POST_STARS, "{post_id}:", prefix=True),
    ),
    Mutation.POST_LIKED: _all(*_POST_CONTENT_LISTINGS, CacheName.LIKED_POSTS_COUNT)
    + (
        Eviction(CacheName.SINGLE_POST, "{post_id}"),
        Eviction(CacheName.POST_LIKES, "{post_id}:{user_id}"),
    ),
    Mutation.POST_STARRED: _all(*_POST_CONTENT_LISTINGS, CacheName.STARRED_POSTS_COUNT)
    + (
        Eviction(CacheName.SINGLE_POST, "{post_id}"),
        Eviction(CacheName.POST_STARS, "{post_id}:{user_id}"),
    ),
    Mutation.POST_GENRES_ASSIGNED: (
        Eviction(CacheName.POSTS_CONTENT),
        Eviction(CacheName.SINGLE_POST, "{post_id}"),
    ),
    Mutation.COMMENT_CREATED: _all(
        CacheName.COMMENT_CONTENT, CacheName.COMMENT_COUNT, CacheName.ALL_COMMENTS
    ),
    Mutation.COMMENT_UPDATED: _all(CacheName.COMMENT_CONTENT, CacheName.ALL_COMMENTS),
    Mutation.COMMENT_DELETED: _all(
        CacheName.COMMENT_CONTENT, CacheName.COMMENT_COUNT, CacheName.ALL_COMMENTS
    )
    + (Eviction(CacheName.COMMENT_LIKES, "{comment_id}:", prefix=True),),
    Mutation.COMMENT_LIKED: _all(CacheName.COMMENT_CONTENT, CacheName.ALL_COMMENTS)
    + (Eviction(CacheName.COMMENT_LIKES, "{comment_id}:{user_id}"),),
}


class CacheCoordinator:
    """Read-through cache with explicit invalidation.

    Cache-store failures never fail a request: reads fall back to the
    loader and failed writes are logged and dropped.  Loaders run under
    ``load_timeout`` seconds; a slow store surfaces as
    ``StoreUnavailableError`` instead of blocking the request.
    """

    def __init__(
        self,
        store: ICacheStore,
        load_timeout: float = 5.0,
        key_prefix: str = "",
        specs: dict[CacheName, CacheSpec] = CACHE_SPECS,
        evictions: dict[Mutation, tuple[Eviction, ...]] = EVICTIONS,
    ):
        self.store = store
        self.load_timeout = load_timeout
        self.key_prefix = key_prefix
        self.specs = specs
        self.evictions = evictions

    def make_key(self, cache_name: CacheName, key: str) -> str:
        return f"{self._namespace(cache_name)}{key}"

    async def get_or_load(
        self,
        cache_name: CacheName,
        key: str,
        loader: Callable[[], Awaitable[T]],
    ) -> T:
        spec = self._spec(cache_name)
        cache_key = self.make_key(spec.name, key)

        try:
            raw = await self.store.get(cache_key)
        except Exception as exc:
            logger.warning("Cache read failed for %s, loading from store: %s", cache_key, exc)
            raw = None

        if raw is not None:
            try:
                return spec.adapter.validate_json(raw)
            except ValidationError as exc:
                logger.warning("Discarding undecodable cache entry %s: %s", cache_key, exc)

        value = await self._load(loader, cache_key)
        if value is None:
            return value

        try:
            await self.store.set(cache_key, spec.adapter.dump_json(value), spec.ttl_seconds)
        except Exception as exc:
            logger.warning("Cache write failed for %s: %s", cache_key, exc)
        return value

    async def get_page(
        self,
        content_cache: CacheName,
        count_cache: CacheName,
        scope: str,
        page: int,
        size: int,
        load_items: Callable[[int, int], Awaitable[list[T]]],
        load_count: Callable[[], Awaitable[int]],
    ) -> Page[T]:
        """Rebuild one page of a listing from its content and count caches.

        ``scope`` identifies the listing (``"all"``, a user id, a query) and
        is the whole key of the count entry.  ``load_items`` receives
        ``(skip, limit)``.
        """
        if page < 0:
            raise InvalidInputError("page must be >= 0")
        if size < 1:
            raise InvalidInputError("size must be >= 1")

        items = await self.get_or_load(
            content_cache,
            f"{scope}:page:{page}:size:{size}",
            lambda: load_items(page * size, size),
        )
        total = await self.get_or_load(count_cache, scope, load_count)
        return Page(items=items, total=total, page=page, size=size)

    async def evict(self, cache_name: CacheName, key: str) -> None:
        cache_key = self.make_key(self._spec(cache_name).name, key)
        try:
            await self.store.evict(cache_key)
        except Exception as exc:
            logger.warning("Cache eviction failed for %s: %s", cache_key, exc)

    async def evict_prefix(self, cache_name: CacheName, key_prefix: str) -> None:
        namespace = self.make_key(self._spec(cache_name).name, key_prefix)
        try:
            await self.store.evict_namespace(namespace)
        except Exception as exc:
            logger.warning("Cache eviction failed for %s*: %s", namespace, exc)

    async def evict_all(self, cache_name: CacheName) -> None:
        await self.evict_prefix(cache_name, "")

    async def invalidate(self, mutation: Mutation, **params: Any) -> None:
        """Apply every eviction the table lists for ``mutation``."""
        for eviction in self.evictions.get(mutation, ()):
            key = eviction.render(params)
            if key is None:
                await self.evict_all(eviction.cache)
            elif eviction.prefix:
                await self.evict_prefix(eviction.cache, key)
            else:
                await self.evict(eviction.cache, key)
        logger.debug("Applied cache invalidation for %s %s", mutation.value, params)

    async def invalidate_listing_cache(self, cache_name: str) -> None:
        """Public entry point for the CRUD layer: drop every entry of one cache."""
        try:
            name = CacheName(cache_name)
        except ValueError:
            raise InvalidInputError(f"Unknown cache: {cache_name}") from None
        await self.evict_all(name)
        logger.info("Listing cache %s invalidated", name.value)

    async def _load(self, loader: Callable[[], Awaitable[T]], cache_key: str) -> T:
        try:
            return await asyncio.wait_for(loader(), timeout=self.load_timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Store lookup for %s exceeded %.1fs", cache_key, self.load_timeout)
            raise StoreUnavailableError("Store did not answer in time") from exc

    def _spec(self, cache_name: CacheName) -> CacheSpec:
        spec = self.specs.get(cache_name)
        if spec is None:
            raise InvalidInputError(f"Unknown cache: {cache_name}")
        return spec

    def _namespace(self, cache_name: CacheName) -> str:
        return f"{self.key_prefix}{cache_name.value}{KEY_SEPARATOR}"
