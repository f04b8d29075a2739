"""Domain entities for the RealDeal engagement engine."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Generic, Optional, TypeVar
from uuid import UUID

T = TypeVar("T")


class EntityKind(str, Enum):
    """Discriminator for the entity a reaction points at."""

    POST = "post"
    COMMENT = "comment"


class ReactionKind(str, Enum):
    LIKE = "like"
    STAR = "star"


@dataclass
class UserProfile:
    user_id: str
    username: str
    email: str
    experience: int = 0
    level: int = 1
    last_daily_exp: Optional[date] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class Post:
    id: UUID
    user_id: str
    title: str
    content: str
    likes_count: int = 0
    stars_count: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class Comment:
    """A comment row.  Replies point at their parent through ``parent_id``."""

    id: UUID
    post_id: UUID
    user_id: str
    content: str
    parent_id: Optional[UUID] = None
    likes_count: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class CommentNode:
    """Read model: a comment with its replies attached, rebuilt on read."""

    comment: Comment
    replies: list["CommentNode"] = field(default_factory=list)


@dataclass(frozen=True)
class ReactionKey:
    """Composite identity of a reaction record.

    At most one record exists per key; existence means "user reacted".
    """

    entity_id: UUID
    user_id: str
    entity_kind: EntityKind
    reaction_kind: ReactionKind


@dataclass
class ReactionRecord:
    key: ReactionKey
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class Genre:
    id: int
    name: str
    description: Optional[str] = None


@dataclass
class UserProgress:
    """Read model for a user's experience state."""

    user_id: str
    experience: int
    level: int
    exp_for_next: int
    last_daily_exp: Optional[date] = None


@dataclass(frozen=True)
class ProgressChange:
    """Result of an EXP mutation."""

    user_id: str
    experience: int
    old_level: int
    new_level: int

    @property
    def level_changed(self) -> bool:
        return self.old_level != self.new_level


@dataclass
class Page(Generic[T]):
    """A page of a listing recombined from its cached content and count."""

    items: list[T]
    total: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return (self.total + self.size - 1) // self.size
