"""In-memory repository fakes shared by the service tests."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Callable, Optional
from uuid import UUID, uuid4

from realdeal.domain.entities import (
    Comment,
    EntityKind,
    Genre,
    Post,
    ProgressChange,
    ReactionKey,
    ReactionKind,
    UserProfile,
)
from realdeal.domain.exceptions import ConflictError, NotFoundError
from realdeal.domain.repositories import (
    ICacheStore,
    ICommentRepository,
    IGenreRepository,
    IPostRepository,
    IReactionRepository,
    IUserProfileRepository,
    PostFilter,
)


@dataclass
class FakeDatabase:
    users: dict[str, UserProfile] = field(default_factory=dict)
    posts: dict[UUID, Post] = field(default_factory=dict)
    comments: dict[UUID, Comment] = field(default_factory=dict)
    reactions: dict[ReactionKey, datetime] = field(default_factory=dict)
    genres: dict[int, Genre] = field(default_factory=dict)
    user_genres: dict[str, set[int]] = field(default_factory=dict)
    post_genres: dict[UUID, set[int]] = field(default_factory=dict)
    clock: datetime = datetime(2024, 1, 1, 12, 0, 0)

    def tick(self) -> datetime:
        self.clock += timedelta(seconds=1)
        return self.clock


class FakeUserRepository(IUserProfileRepository):
    def __init__(self, db: FakeDatabase):
        self.db = db

    async def create(self, profile: UserProfile) -> UserProfile:
        if profile.user_id in self.db.users:
            raise ConflictError(f"User already exists: {profile.user_id}")
        if any(
            u.username == profile.username or u.email == profile.email
            for u in self.db.users.values()
        ):
            raise ConflictError("Duplicate username or email")
        self.db.users[profile.user_id] = replace(profile)
        return replace(profile)

    async def get_by_id(self, user_id: str) -> Optional[UserProfile]:
        user = self.db.users.get(user_id)
        return replace(user) if user else None

    async def exists_by_email(self, email: str) -> bool:
        return any(u.email == email for u in self.db.users.values())

    async def exists_by_username(self, username: str) -> bool:
        return any(u.username == username for u in self.db.users.values())

    async def get_usernames(self, user_ids: list[str]) -> dict[str, str]:
        return {uid: self.db.users[uid].username for uid in user_ids if uid in self.db.users}

    async def get_profiles(self, user_ids: list[str]) -> dict[str, UserProfile]:
        return {uid: replace(self.db.users[uid]) for uid in user_ids if uid in self.db.users}

    async def adjust_experience(
        self, user_id: str, delta: int, level_for: Callable[[int], int]
    ) -> Optional[ProgressChange]:
        user = self.db.users.get(user_id)
        if user is None:
            return None
        old_level = user.level
        user.experience = max(user.experience + delta, 0)
        user.level = level_for(user.experience)
        return ProgressChange(user_id, user.experience, old_level, user.level)

    async def claim_daily_bonus(
        self, user_id: str, today: date, bonus: int, level_for: Callable[[int], int]
    ) -> Optional[ProgressChange]:
        user = self.db.users.get(user_id)
        if user is None or user.last_daily_exp == today:
            return None
        user.last_daily_exp = today
        return await self.adjust_experience(user_id, bonus, level_for)


class FakePostRepository(IPostRepository):
    def __init__(self, db: FakeDatabase):
        self.db = db

    async def create(self, post: Post) -> Post:
        self.db.posts[post.id] = replace(post)
        return replace(post)

    async def get_by_id(self, post_id: UUID) -> Optional[Post]:
        post = self.db.posts.get(post_id)
        return replace(post) if post else None

    async def update(self, post: Post) -> Post:
        stored = self.db.posts.get(post.id)
        if stored is None:
            raise NotFoundError(f"Post not found: {post.id}")
        stored.title = post.title
        stored.content = post.content
        return replace(stored)

    async def delete(self, post_id: UUID) -> bool:
        if self.db.posts.pop(post_id, None) is None:
            return False
        doomed = {c.id for c in self.db.comments.values() if c.post_id == post_id}
        for comment_id in doomed:
            del self.db.comments[comment_id]
        for key in list(self.db.reactions):
            if key.entity_id == post_id or key.entity_id in doomed:
                del self.db.reactions[key]
        self.db.post_genres.pop(post_id, None)
        return True

    async def find_page(self, post_filter: PostFilter, skip: int, limit: int) -> list[Post]:
        return [replace(p) for p in self._matching(post_filter)[skip : skip + limit]]

    async def count(self, post_filter: PostFilter) -> int:
        return len(self._matching(post_filter))

    def _matching(self, post_filter: PostFilter) -> list[Post]:
        posts = sorted(self.db.posts.values(), key=lambda p: p.created_at, reverse=True)
        if post_filter.author_id is not None:
            posts = [p for p in posts if p.user_id == post_filter.author_id]
        if post_filter.query:
            q = post_filter.query.lower()
            posts = [p for p in posts if q in p.title.lower() or q in p.content.lower()]
        for user_id, kind in (
            (post_filter.liked_by, ReactionKind.LIKE),
            (post_filter.starred_by, ReactionKind.STAR),
        ):
            if user_id is None:
                continue
            reacted_at = {
                key.entity_id: at
                for key, at in self.db.reactions.items()
                if key.entity_kind is EntityKind.POST
                and key.reaction_kind is kind
                and key.user_id == user_id
            }
            posts = sorted(
                (p for p in posts if p.id in reacted_at),
                key=lambda p: reacted_at[p.id],
                reverse=True,
            )
        return posts


class FakeCommentRepository(ICommentRepository):
    def __init__(self, db: FakeDatabase):
        self.db = db

    async def create(self, comment: Comment) -> Comment:
        self.db.comments[comment.id] = replace(comment)
        return replace(comment)

    async def get_by_id(self, comment_id: UUID) -> Optional[Comment]:
        comment = self.db.comments.get(comment_id)
        return replace(comment) if comment else None

    async def update(self, comment: Comment) -> Comment:
        stored = self.db.comments[comment.id]
        stored.content = comment.content
        return replace(stored)

    async def delete(self, comment_id: UUID) -> bool:
        if comment_id not in self.db.comments:
            return False
        doomed = {comment_id}
        grew = True
        while grew:
            children = {
                c.id for c in self.db.comments.values() if c.parent_id in doomed
            } - doomed
            grew = bool(children)
            doomed |= children
        for cid in doomed:
            del self.db.comments[cid]
        for key in list(self.db.reactions):
            if key.entity_id in doomed:
                del self.db.reactions[key]
        return True

    async def list_top_level(self, post_id: UUID, skip: int, limit: int) -> list[Comment]:
        top = [c for c in await self.list_by_post(post_id) if c.parent_id is None]
        return top[skip : skip + limit]

    async def count_top_level(self, post_id: UUID) -> int:
        return len([c for c in await self.list_by_post(post_id) if c.parent_id is None])

    async def list_by_post(self, post_id: UUID) -> list[Comment]:
        return sorted(
            (replace(c) for c in self.db.comments.values() if c.post_id == post_id),
            key=lambda c: c.created_at,
        )


_COUNTERS = {
    (EntityKind.POST, ReactionKind.LIKE): "likes_count",
    (EntityKind.POST, ReactionKind.STAR): "stars_count",
    (EntityKind.COMMENT, ReactionKind.LIKE): "likes_count",
}


class FakeReactionRepository(IReactionRepository):
    def __init__(self, db: FakeDatabase):
        self.db = db

    async def exists(self, key: ReactionKey) -> bool:
        return key in self.db.reactions

    async def insert_and_increment(self, key: ReactionKey) -> None:
        if key in self.db.reactions:
            raise ConflictError(f"Reaction already recorded: {key}")
        target = self._target(key.entity_kind, key.entity_id)
        self.db.reactions[key] = self.db.tick()
        counter = _COUNTERS[(key.entity_kind, key.reaction_kind)]
        setattr(target, counter, getattr(target, counter) + 1)

    async def delete_and_decrement(self, key: ReactionKey) -> None:
        if self.db.reactions.pop(key, None) is None:
            raise ConflictError(f"No reaction to remove: {key}")
        target = self._target(key.entity_kind, key.entity_id)
        counter = _COUNTERS[(key.entity_kind, key.reaction_kind)]
        setattr(target, counter, getattr(target, counter) - 1)

    async def get_counter(
        self, entity_kind: EntityKind, entity_id: UUID, reaction_kind: ReactionKind
    ) -> Optional[int]:
        store = self.db.posts if entity_kind is EntityKind.POST else self.db.comments
        target = store.get(entity_id)
        if target is None:
            return None
        return getattr(target, _COUNTERS[(entity_kind, reaction_kind)])

    async def count_records(
        self, entity_kind: EntityKind, entity_id: UUID, reaction_kind: ReactionKind
    ) -> int:
        return sum(
            1
            for key in self.db.reactions
            if key.entity_id == entity_id
            and key.entity_kind is entity_kind
            and key.reaction_kind is reaction_kind
        )

    def _target(self, entity_kind: EntityKind, entity_id: UUID):
        store = self.db.posts if entity_kind is EntityKind.POST else self.db.comments
        target = store.get(entity_id)
        if target is None:
            raise NotFoundError(f"{entity_kind.value} not found: {entity_id}")
        return target


class FakeGenreRepository(IGenreRepository):
    def __init__(self, db: FakeDatabase):
        self.db = db

    async def create(self, name: str, description: Optional[str] = None) -> Genre:
        if any(g.name == name for g in self.db.genres.values()):
            raise ConflictError(f"Genre already exists: {name}")
        genre = Genre(id=len(self.db.genres) + 1, name=name, description=description)
        self.db.genres[genre.id] = genre
        return genre

    async def list_all(self) -> list[Genre]:
        return [self.db.genres[i] for i in sorted(self.db.genres)]

    async def get_by_ids(self, genre_ids: list[int]) -> list[Genre]:
        return [self.db.genres[i] for i in sorted(set(genre_ids)) if i in self.db.genres]

    async def get_user_genre_ids(self, user_id: str) -> set[int]:
        return set(self.db.user_genres.get(user_id, set()))

    async def get_post_genre_ids(self, post_id: UUID) -> set[int]:
        return set(self.db.post_genres.get(post_id, set()))

    async def replace_user_genres(self, user_id: str, genre_ids: list[int]) -> None:
        self.db.user_genres[user_id] = set(genre_ids)

    async def replace_post_genres(self, post_id: UUID, genre_ids: list[int]) -> None:
        self.db.post_genres[post_id] = set(genre_ids)


class BrokenCacheStore(ICacheStore):
    """A cache store whose backend is down."""

    def __init__(self):
        self.calls = 0

    async def get(self, key: str) -> Optional[bytes]:
        self.calls += 1
        raise ConnectionError("cache down")

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        self.calls += 1
        raise ConnectionError("cache down")

    async def evict(self, key: str) -> None:
        self.calls += 1
        raise ConnectionError("cache down")

    async def evict_namespace(self, prefix: str) -> int:
        self.calls += 1
        raise ConnectionError("cache down")


def make_user(db: FakeDatabase, user_id: str, experience: int = 0, level: int = 1) -> UserProfile:
    profile = UserProfile(
        user_id=user_id,
        username=f"{user_id}-name",
        email=f"{user_id}@example.com",
        experience=experience,
        level=level,
    )
    db.users[user_id] = profile
    return profile


def make_post(
    db: FakeDatabase,
    user_id: str,
    title: str = "A post",
    content: str = "Some content",
    genres: Optional[set[int]] = None,
    created_at: Optional[datetime] = None,
) -> Post:
    post = Post(
        id=uuid4(),
        user_id=user_id,
        title=title,
        content=content,
        created_at=created_at or db.tick(),
    )
    db.posts[post.id] = post
    if genres:
        db.post_genres[post.id] = set(genres)
    return post


def make_comment(
    db: FakeDatabase,
    post: Post,
    user_id: str,
    content: str = "A comment",
    parent: Optional[Comment] = None,
) -> Comment:
    comment = Comment(
        id=uuid4(),
        post_id=post.id,
        user_id=user_id,
        content=content,
        parent_id=parent.id if parent else None,
        created_at=db.tick(),
    )
    db.comments[comment.id] = comment
    return comment
