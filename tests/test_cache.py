import asyncio
from uuid import uuid4

import pytest

from realdeal.domain.entities import Post
from realdeal.domain.exceptions import InvalidInputError, StoreUnavailableError
from realdeal.infrastructure.cache.memory import InMemoryCacheStore
from realdeal.services.cache import (
    CACHE_SPECS,
    EVICTIONS,
    TTL_LONG,
    TTL_SHORT,
    CacheCoordinator,
    CacheName,
    Mutation,
)
from tests.fakes import BrokenCacheStore


class Loader:
    def __init__(self, value):
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.value


async def test_get_or_load_caches_value(cache):
    loader = Loader(42)

    assert await cache.get_or_load(CacheName.POSTS_COUNT, "all", loader) == 42
    assert await cache.get_or_load(CacheName.POSTS_COUNT, "all", loader) == 42
    assert loader.calls == 1


async def test_cached_posts_round_trip(cache):
    post = Post(id=uuid4(), user_id="u", title="t", content="c", likes_count=3)
    loader = Loader([post])

    await cache.get_or_load(CacheName.POSTS_CONTENT, "k", loader)
    cached = await cache.get_or_load(CacheName.POSTS_CONTENT, "k", loader)

    assert cached == [post]
    assert loader.calls == 1


async def test_evict_all_forces_reload_with_fresh_value(cache):
    loader = Loader(1)
    await cache.get_or_load(CacheName.POSTS_COUNT, "all", loader)

    loader.value = 2
    await cache.evict_all(CacheName.POSTS_COUNT)

    assert await cache.get_or_load(CacheName.POSTS_COUNT, "all", loader) == 2


async def test_evict_all_leaves_other_caches(cache, store):
    await cache.get_or_load(CacheName.POSTS_COUNT, "all", Loader(1))
    await cache.get_or_load(CacheName.USER_POSTS_COUNT, "alice", Loader(1))

    await cache.evict_all(CacheName.POSTS_COUNT)

    assert len(store) == 1


async def test_none_is_not_cached(cache, store):
    assert await cache.get_or_load(CacheName.SINGLE_POST, "x", Loader(None)) is None
    assert len(store) == 0


async def test_store_failure_falls_back_to_loader():
    cache = CacheCoordinator(BrokenCacheStore())
    loader = Loader(7)

    assert await cache.get_or_load(CacheName.POSTS_COUNT, "all", loader) == 7
    assert await cache.get_or_load(CacheName.POSTS_COUNT, "all", loader) == 7
    assert loader.calls == 2
    await cache.invalidate(Mutation.POST_CREATED, post_id=uuid4(), user_id="u")


async def test_undecodable_entry_is_reloaded(cache, store):
    await store.set(cache.make_key(CacheName.POSTS_COUNT, "all"), b"not json", 60)

    assert await cache.get_or_load(CacheName.POSTS_COUNT, "all", Loader(5)) == 5


async def test_entries_expire_after_ttl():
    now = [0.0]
    store = InMemoryCacheStore(clock=lambda: now[0])
    cache = CacheCoordinator(store)
    loader = Loader(1)

    await cache.get_or_load(CacheName.POSTS_CONTENT, "k", Loader([]))
    await cache.get_or_load(CacheName.POSTS_COUNT, "all", loader)
    now[0] = TTL_SHORT.total_seconds() + 1

    assert await store.get(cache.make_key(CacheName.POSTS_CONTENT, "k")) is None
    assert await cache.get_or_load(CacheName.POSTS_COUNT, "all", loader) == 1
    assert loader.calls == 1

    now[0] = TTL_LONG.total_seconds() + 1
    await cache.get_or_load(CacheName.POSTS_COUNT, "all", loader)
    assert loader.calls == 2


async def test_slow_loader_raises_store_unavailable(store):
    cache = CacheCoordinator(store, load_timeout=0.01)

    async def slow():
        await asyncio.sleep(1)
        return 1

    with pytest.raises(StoreUnavailableError):
        await cache.get_or_load(CacheName.POSTS_COUNT, "all", slow)


async def test_get_page_pairs_content_and_count(cache):
    async def load_items(skip, limit):
        assert (skip, limit) == (6, 3)
        return []

    page = await cache.get_page(
        CacheName.POSTS_CONTENT, CacheName.POSTS_COUNT, "all", 2, 3, load_items, Loader(7)
    )

    assert (page.items, page.total, page.page, page.size) == ([], 7, 2, 3)
    assert page.total_pages == 3


@pytest.mark.parametrize("page, size", [(-1, 5), (0, 0)])
async def test_get_page_rejects_bad_bounds(cache, page, size):
    with pytest.raises(InvalidInputError):
        await cache.get_page(
            CacheName.POSTS_CONTENT, CacheName.POSTS_COUNT, "all", page, size, None, None
        )


async def test_key_prefix_isolates_deployments(store):
    staging = CacheCoordinator(store, key_prefix="staging:")
    prod = CacheCoordinator(store)
    await staging.get_or_load(CacheName.POSTS_COUNT, "all", Loader(1))

    assert await prod.get_or_load(CacheName.POSTS_COUNT, "all", Loader(2)) == 2
    await prod.evict_all(CacheName.POSTS_COUNT)
    assert await staging.get_or_load(CacheName.POSTS_COUNT, "all", Loader(3)) == 1


async def test_post_like_evicts_single_status_entry(cache, store):
    post_id = uuid4()
    await cache.get_or_load(CacheName.POST_LIKES, f"{post_id}:alice", Loader(True))
    await cache.get_or_load(CacheName.POST_LIKES, f"{post_id}:bob", Loader(False))

    await cache.invalidate(Mutation.POST_LIKED, post_id=post_id, user_id="alice")

    assert await store.get(cache.make_key(CacheName.POST_LIKES, f"{post_id}:alice")) is None
    assert await store.get(cache.make_key(CacheName.POST_LIKES, f"{post_id}:bob")) == b"false"


async def test_post_delete_evicts_every_status_of_that_post(cache, store):
    post_id, other = uuid4(), uuid4()
    for pid in (post_id, other):
        await cache.get_or_load(CacheName.POST_STARS, f"{pid}:alice", Loader(True))

    await cache.invalidate(Mutation.POST_DELETED, post_id=post_id, user_id="alice")

    assert await store.get(cache.make_key(CacheName.POST_STARS, f"{post_id}:alice")) is None
    assert await store.get(cache.make_key(CacheName.POST_STARS, f"{other}:alice")) == b"true"


def test_every_mutation_has_evictions():
    assert set(EVICTIONS) == set(Mutation)
    for evictions in EVICTIONS.values():
        assert evictions
        for eviction in evictions:
            assert eviction.cache in CACHE_SPECS


def test_every_cache_has_a_spec():
    assert set(CACHE_SPECS) == set(CacheName)


async def test_invalidate_listing_cache_by_name(cache, store):
    await cache.get_or_load(CacheName.POSTS_CONTENT, "all:page:0:size:9", Loader([]))

    await cache.invalidate_listing_cache("postsContent")

    assert len(store) == 0


async def test_invalidate_listing_cache_unknown_name(cache):
    with pytest.raises(InvalidInputError):
        await cache.invalidate_listing_cache("nope")
