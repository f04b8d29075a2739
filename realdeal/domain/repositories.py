"""Repository interfaces (ports) for dependency inversion."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional
from uuid import UUID

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


@dataclass(frozen=True)
class PostFilter:
    """Selects one of the post listings.  All fields unset means "every post"."""

    author_id: Optional[str] = None
    liked_by: Optional[str] = None
    starred_by: Optional[str] = None
    query: Optional[str] = None


class IUserProfileRepository(ABC):

    @abstractmethod
    async def create(self, profile: UserProfile) -> UserProfile:
        """Persist a new profile.  Raises ``ConflictError`` on a duplicate key."""
        pass

    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[UserProfile]:
        pass

    @abstractmethod
    async def exists_by_email(self, email: str) -> bool:
        pass

    @abstractmethod
    async def exists_by_username(self, username: str) -> bool:
        pass

    @abstractmethod
    async def get_usernames(self, user_ids: list[str]) -> dict[str, str]:
        pass

    @abstractmethod
    async def get_profiles(self, user_ids: list[str]) -> dict[str, UserProfile]:
        """Profiles keyed by user id; unknown ids are absent from the result."""
        pass

    @abstractmethod
    async def adjust_experience(
        self, user_id: str, delta: int, level_for: Callable[[int], int]
    ) -> Optional[ProgressChange]:
        """Add ``delta`` (floored at 0) and store the recomputed level, as one unit.

        Returns ``None`` when the user does not exist.
        """
        pass

    @abstractmethod
    async def claim_daily_bonus(
        self, user_id: str, today: date, bonus: int, level_for: Callable[[int], int]
    ) -> Optional[ProgressChange]:
        """Compare-and-set ``last_daily_exp`` to ``today`` and add ``bonus`` in the same commit.

        Returns the EXP change only for the caller whose update actually
        changed the row, ``None`` for everyone else.
        """
        pass


class IPostRepository(ABC):

    @abstractmethod
    async def create(self, post: Post) -> Post:
        pass

    @abstractmethod
    async def get_by_id(self, post_id: UUID) -> Optional[Post]:
        pass

    @abstractmethod
    async def update(self, post: Post) -> Post:
        pass

    @abstractmethod
    async def delete(self, post_id: UUID) -> bool:
        """Delete the post together with its comments and reaction records."""
        pass

    @abstractmethod
    async def find_page(self, post_filter: PostFilter, skip: int, limit: int) -> list[Post]:
        """Newest first (for liked/starred listings: most recent reaction first)."""
        pass

    @abstractmethod
    async def count(self, post_filter: PostFilter) -> int:
        pass


class ICommentRepository(ABC):

    @abstractmethod
    async def create(self, comment: Comment) -> Comment:
        pass

    @abstractmethod
    async def get_by_id(self, comment_id: UUID) -> Optional[Comment]:
        pass

    @abstractmethod
    async def update(self, comment: Comment) -> Comment:
        pass

    @abstractmethod
    async def delete(self, comment_id: UUID) -> bool:
        """Delete the comment, every reply below it and their reaction records."""
        pass

    @abstractmethod
    async def list_top_level(self, post_id: UUID, skip: int, limit: int) -> list[Comment]:
        """Comments without a parent, oldest first."""
        pass

    @abstractmethod
    async def count_top_level(self, post_id: UUID) -> int:
        pass

    @abstractmethod
    async def list_by_post(self, post_id: UUID) -> list[Comment]:
        """Every comment of a post (any depth), oldest first."""
        pass


class IReactionRepository(ABC):
    """Reaction records plus the denormalized counters they drive.

    The two mutating methods apply the record change and the counter change
    in a single transaction.  Counters are adjusted store-side
    (``count = count + delta``), never read-modify-write.
    """

    @abstractmethod
    async def exists(self, key: ReactionKey) -> bool:
        pass

    @abstractmethod
    async def insert_and_increment(self, key: ReactionKey) -> None:
        """Raises ``ConflictError`` if the record already exists."""
        pass

    @abstractmethod
    async def delete_and_decrement(self, key: ReactionKey) -> None:
        """Raises ``ConflictError`` if there was no record to delete."""
        pass

    @abstractmethod
    async def get_counter(
        self, entity_kind: EntityKind, entity_id: UUID, reaction_kind: ReactionKind
    ) -> Optional[int]:
        pass

    @abstractmethod
    async def count_records(
        self, entity_kind: EntityKind, entity_id: UUID, reaction_kind: ReactionKind
    ) -> int:
        """Number of live records (used to audit counter drift)."""
        pass


class IGenreRepository(ABC):

    @abstractmethod
    async def create(self, name: str, description: Optional[str] = None) -> Genre:
        """Raises ``ConflictError`` if the name is taken."""
        pass

    @abstractmethod
    async def list_all(self) -> list[Genre]:
        pass

    @abstractmethod
    async def get_by_ids(self, genre_ids: list[int]) -> list[Genre]:
        pass

    @abstractmethod
    async def get_user_genre_ids(self, user_id: str) -> set[int]:
        pass

    @abstractmethod
    async def get_post_genre_ids(self, post_id: UUID) -> set[int]:
        pass

    @abstractmethod
    async def replace_user_genres(self, user_id: str, genre_ids: list[int]) -> None:
        pass

    @abstractmethod
    async def replace_post_genres(self, post_id: UUID, genre_ids: list[int]) -> None:
        pass


class ICacheStore(ABC):
    """Byte-oriented key/value store with per-entry TTL."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        pass

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    async def evict(self, key: str) -> None:
        pass

    @abstractmethod
    async def evict_namespace(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``; returns how many went."""
        pass
