"""Repository tests against an in-memory SQLite database."""

from datetime import date, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from realdeal.domain.entities import (
    Comment,
    EntityKind,
    Post,
    ReactionKey,
    ReactionKind,
    UserProfile,
)
from realdeal.domain.exceptions import ConflictError, NotFoundError
from realdeal.domain.levels import ThresholdTable
from realdeal.domain.repositories import PostFilter
from realdeal.infrastructure.database.models import Base
from realdeal.infrastructure.database.repository import (
    CommentRepository,
    GenreRepository,
    PostRepository,
    ReactionRepository,
    UserProfileRepository,
)

BASE = datetime(2024, 1, 1, 12, 0, 0)


@pytest.fixture
async def session():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def users(session):
    return UserProfileRepository(session)


@pytest.fixture
def posts(session):
    return PostRepository(session)


@pytest.fixture
def comments(session):
    return CommentRepository(session)


@pytest.fixture
def reactions(session):
    return ReactionRepository(session)


@pytest.fixture
def genres(session):
    return GenreRepository(session)


async def _post(posts, user_id="alice", title="Title", content="Body", minutes=0) -> Post:
    return await posts.create(
        Post(
            id=uuid4(),
            user_id=user_id,
            title=title,
            content=content,
            created_at=BASE + timedelta(minutes=minutes),
        )
    )


async def _comment(comments, post, parent=None, minutes=0) -> Comment:
    return await comments.create(
        Comment(
            id=uuid4(),
            post_id=post.id,
            user_id="bob",
            content="hi",
            parent_id=parent.id if parent else None,
            created_at=BASE + timedelta(minutes=minutes),
        )
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
async def test_user_create_and_duplicate(users):
    await users.create(UserProfile(user_id="u1", username="alice", email="a@example.com"))

    assert (await users.get_by_id("u1")).username == "alice"
    assert await users.exists_by_email("a@example.com")
    assert await users.exists_by_username("alice")
    with pytest.raises(ConflictError):
        await users.create(UserProfile(user_id="u2", username="alice", email="b@example.com"))


async def test_adjust_experience_keeps_level_in_step(users):
    await users.create(UserProfile(user_id="u1", username="alice", email="a@example.com"))
    table = ThresholdTable()

    up = await users.adjust_experience("u1", 130, table.level_for)
    down = await users.adjust_experience("u1", -500, table.level_for)

    assert (up.old_level, up.new_level) == (1, 3)
    assert (down.experience, down.new_level) == (0, 1)
    stored = await users.get_by_id("u1")
    assert (stored.experience, stored.level) == (0, 1)


async def test_adjust_experience_unknown_user(users):
    assert await users.adjust_experience("ghost", 5, ThresholdTable().level_for) is None


async def test_claim_daily_bonus_once_per_date(users):
    await users.create(UserProfile(user_id="u1", username="alice", email="a@example.com"))
    level_for = ThresholdTable().level_for
    today = date(2024, 3, 1)

    first = await users.claim_daily_bonus("u1", today, 10, level_for)
    again = await users.claim_daily_bonus("u1", today, 10, level_for)
    tomorrow = await users.claim_daily_bonus("u1", today + timedelta(days=1), 10, level_for)

    assert first.experience == 10
    assert again is None
    assert tomorrow.experience == 20
    profile = await users.get_by_id("u1")
    assert profile.last_daily_exp == today + timedelta(days=1)
    assert profile.experience == 20


async def test_claim_daily_bonus_unknown_user(users):
    level_for = ThresholdTable().level_for
    assert await users.claim_daily_bonus("ghost", date(2024, 3, 1), 10, level_for) is None


async def test_get_profiles(users):
    await users.create(UserProfile(user_id="u1", username="alice", email="a@example.com", level=3))

    profiles = await users.get_profiles(["u1", "ghost"])

    assert list(profiles) == ["u1"]
    assert profiles["u1"].level == 3


async def test_get_usernames(users):
    await users.create(UserProfile(user_id="u1", username="alice", email="a@example.com"))
    assert await users.get_usernames(["u1", "ghost"]) == {"u1": "alice"}


# ---------------------------------------------------------------------------
# Reactions
# ---------------------------------------------------------------------------
async def test_insert_and_delete_move_counter(posts, reactions):
    post = await _post(posts)
    key = ReactionKey(post.id, "bob", EntityKind.POST, ReactionKind.LIKE)

    await reactions.insert_and_increment(key)
    assert await reactions.exists(key)
    assert await reactions.get_counter(EntityKind.POST, post.id, ReactionKind.LIKE) == 1
    assert (await posts.get_by_id(post.id)).likes_count == 1

    await reactions.delete_and_decrement(key)
    assert not await reactions.exists(key)
    assert await reactions.get_counter(EntityKind.POST, post.id, ReactionKind.LIKE) == 0


async def test_duplicate_insert_conflicts_and_leaves_counter(posts, reactions):
    post = await _post(posts)
    key = ReactionKey(post.id, "bob", EntityKind.POST, ReactionKind.STAR)
    await reactions.insert_and_increment(key)

    with pytest.raises(ConflictError):
        await reactions.insert_and_increment(key)

    assert await reactions.get_counter(EntityKind.POST, post.id, ReactionKind.STAR) == 1
    assert await reactions.count_records(EntityKind.POST, post.id, ReactionKind.STAR) == 1


async def test_delete_of_missing_record_conflicts(posts, reactions):
    post = await _post(posts)
    key = ReactionKey(post.id, "bob", EntityKind.POST, ReactionKind.LIKE)

    with pytest.raises(ConflictError):
        await reactions.delete_and_decrement(key)
    assert await reactions.get_counter(EntityKind.POST, post.id, ReactionKind.LIKE) == 0


async def test_reaction_on_missing_entity(reactions):
    key = ReactionKey(uuid4(), "bob", EntityKind.POST, ReactionKind.LIKE)

    with pytest.raises(NotFoundError):
        await reactions.insert_and_increment(key)
    assert not await reactions.exists(key)


async def test_comment_like_counter(posts, comments, reactions):
    post = await _post(posts)
    comment = await _comment(comments, post)

    await reactions.insert_and_increment(
        ReactionKey(comment.id, "carol", EntityKind.COMMENT, ReactionKind.LIKE)
    )

    assert (await comments.get_by_id(comment.id)).likes_count == 1


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------
async def test_find_page_newest_first_and_count(posts):
    old = await _post(posts, minutes=0)
    new = await _post(posts, minutes=5)
    await _post(posts, user_id="bob", minutes=3)

    page = await posts.find_page(PostFilter(author_id="alice"), 0, 10)

    assert [p.id for p in page] == [new.id, old.id]
    assert await posts.count(PostFilter()) == 3
    assert await posts.count(PostFilter(author_id="alice")) == 2


async def test_liked_listing_orders_by_reaction_time(posts, reactions):
    first = await _post(posts, minutes=0)
    second = await _post(posts, minutes=1)
    await reactions.insert_and_increment(ReactionKey(second.id, "bob", EntityKind.POST, ReactionKind.LIKE))
    await reactions.insert_and_increment(ReactionKey(first.id, "bob", EntityKind.POST, ReactionKind.LIKE))

    liked = await posts.find_page(PostFilter(liked_by="bob"), 0, 10)

    assert {p.id for p in liked} == {first.id, second.id}
    assert await posts.count(PostFilter(liked_by="bob")) == 2
    assert await posts.count(PostFilter(starred_by="bob")) == 0


async def test_search_matches_title_or_content(posts):
    by_title = await _post(posts, title="Cheap Flights")
    by_content = await _post(posts, content="flights to 100% sunny places", minutes=1)
    await _post(posts, title="Other", content="nothing")

    hits = await posts.find_page(PostFilter(query="flights"), 0, 10)
    percent = await posts.find_page(PostFilter(query="100%"), 0, 10)

    assert [p.id for p in hits] == [by_content.id, by_title.id]
    assert [p.id for p in percent] == [by_content.id]


async def test_delete_post_cascades(posts, comments, reactions, genres):
    post = await _post(posts)
    comment = await _comment(comments, post)
    await reactions.insert_and_increment(ReactionKey(post.id, "bob", EntityKind.POST, ReactionKind.LIKE))
    await reactions.insert_and_increment(
        ReactionKey(comment.id, "bob", EntityKind.COMMENT, ReactionKind.LIKE)
    )
    genre = await genres.create("Action")
    await genres.replace_post_genres(post.id, [genre.id])

    assert await posts.delete(post.id) is True

    assert await posts.get_by_id(post.id) is None
    assert await comments.get_by_id(comment.id) is None
    assert await reactions.count_records(EntityKind.POST, post.id, ReactionKind.LIKE) == 0
    assert await reactions.count_records(EntityKind.COMMENT, comment.id, ReactionKind.LIKE) == 0
    assert await genres.get_post_genre_ids(post.id) == set()
    assert await posts.delete(post.id) is False


async def test_update_post(posts):
    post = await _post(posts)
    post.title = "Edited"

    assert (await posts.update(post)).title == "Edited"


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
async def test_top_level_comments_oldest_first(posts, comments):
    post = await _post(posts)
    newer = await _comment(comments, post, minutes=2)
    older = await _comment(comments, post, minutes=1)
    await _comment(comments, post, parent=older, minutes=3)

    top = await comments.list_top_level(post.id, 0, 10)

    assert [c.id for c in top] == [older.id, newer.id]
    assert await comments.count_top_level(post.id) == 2
    assert len(await comments.list_by_post(post.id)) == 3


async def test_delete_comment_removes_subtree(posts, comments, reactions):
    post = await _post(posts)
    root = await _comment(comments, post)
    reply = await _comment(comments, post, parent=root, minutes=1)
    nested = await _comment(comments, post, parent=reply, minutes=2)
    sibling = await _comment(comments, post, minutes=3)
    await reactions.insert_and_increment(
        ReactionKey(nested.id, "carol", EntityKind.COMMENT, ReactionKind.LIKE)
    )

    assert await comments.delete(root.id) is True

    remaining = await comments.list_by_post(post.id)
    assert [c.id for c in remaining] == [sibling.id]
    assert await reactions.count_records(EntityKind.COMMENT, nested.id, ReactionKind.LIKE) == 0
    assert await comments.delete(root.id) is False


# ---------------------------------------------------------------------------
# Genres
# ---------------------------------------------------------------------------
async def test_genres(posts, genres):
    action = await genres.create("Action", "Explosions")
    drama = await genres.create("Drama")
    with pytest.raises(ConflictError):
        await genres.create("Action")

    await genres.replace_user_genres("alice", [action.id, drama.id])
    await genres.replace_user_genres("alice", [drama.id])

    assert [g.name for g in await genres.list_all()] == ["Action", "Drama"]
    assert [g.id for g in await genres.get_by_ids([drama.id, 999])] == [drama.id]
    assert await genres.get_user_genre_ids("alice") == {drama.id}
