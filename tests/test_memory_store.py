from realdeal.infrastructure.cache.memory import InMemoryCacheStore


class ManualClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


async def test_expired_entries_are_purged_on_write():
    clock = ManualClock()
    store = InMemoryCacheStore(maxsize=100_000, clock=clock)
    for i in range(1_000):
        await store.set(f"postLikes::post-{i}:user", b"true", 900)

    clock.now = 3600
    for i in range(10):
        await store.set(f"postsCount::fresh-{i}", b"1", 1800)

    assert len(store) == 10


async def test_each_entry_keeps_its_own_ttl():
    clock = ManualClock()
    store = InMemoryCacheStore(clock=clock)
    await store.set("postsContent::all:page:0:size:9", b"[]", 300)
    await store.set("postsCount::all", b"4", 1800)

    clock.now = 301

    assert await store.get("postsContent::all:page:0:size:9") is None
    assert await store.get("postsCount::all") == b"4"


async def test_maxsize_bounds_the_store():
    store = InMemoryCacheStore(maxsize=3)
    for i in range(5):
        await store.set(f"singlePost::{i}", b"{}", 1800)

    assert len(store) == 3
    assert await store.get("singlePost::0") is None
    assert await store.get("singlePost::4") == b"{}"


async def test_evict_namespace_only_removes_prefix():
    store = InMemoryCacheStore()
    await store.set("postsContent::all:page:0:size:9", b"[]", 300)
    await store.set("postsContent::all:page:1:size:9", b"[]", 300)
    await store.set("postsCount::all", b"2", 1800)

    removed = await store.evict_namespace("postsContent::")

    assert removed == 2
    assert await store.get("postsCount::all") == b"2"


async def test_evict_namespace_skips_expired_entries():
    clock = ManualClock()
    store = InMemoryCacheStore(clock=clock)
    await store.set("commentLikes::a:u", b"true", 900)
    await store.set("commentLikes::b:u", b"true", 1800)

    clock.now = 1000

    assert await store.evict_namespace("commentLikes::") == 1
    assert len(store) == 0
