"""Domain-level application service interfaces (ports).

The API layer depends on these contracts only; concrete implementations
live in ``realdeal/services/`` and are wired together by the composition
root in ``realdeal/core/dependencies.py``.  Tests swap them through
FastAPI's ``app.dependency_overrides``.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from realdeal.domain.entities import (
    Comment,
    CommentNode,
    EntityKind,
    Page,
    Post,
    ProgressChange,
    ReactionKind,
    UserProgress,
)


class IExperienceService(ABC):

    @abstractmethod
    async def add_exp(self, user_id: str, delta: int) -> ProgressChange:
        pass

    @abstractmethod
    async def grant_daily_login_exp(self, user_id: str, bonus: int) -> bool:
        """Grant ``bonus`` at most once per calendar date.  Returns True if granted."""
        pass

    @abstractmethod
    async def get_progress(self, user_id: str) -> UserProgress:
        pass


class IReactionService(ABC):

    @abstractmethod
    async def toggle(
        self,
        entity_id: UUID,
        entity_kind: EntityKind,
        reaction_kind: ReactionKind,
        acting_user_id: str,
    ) -> bool:
        """Flip the reaction and return the new state (True = reacted)."""
        pass

    @abstractmethod
    async def toggle_reaction(
        self,
        entity_id: UUID,
        entity_kind: EntityKind,
        reaction_kind: ReactionKind,
        user_id: str,
    ) -> tuple[bool, int]:
        """Flip the reaction and return ``(new_state, current_count)``."""
        pass

    @abstractmethod
    async def has_reacted(
        self,
        entity_id: UUID,
        entity_kind: EntityKind,
        reaction_kind: ReactionKind,
        user_id: str,
    ) -> bool:
        pass


class IPostService(ABC):

    @abstractmethod
    async def create_post(
        self,
        user_id: str,
        title: str,
        content: str,
        genre_ids: Optional[list[int]] = None,
    ) -> Post:
        pass

    @abstractmethod
    async def update_post(self, post_id: UUID, user_id: str, title: str, content: str) -> Post:
        pass

    @abstractmethod
    async def delete_post(self, post_id: UUID, user_id: str) -> None:
        pass

    @abstractmethod
    async def get_post(self, post_id: UUID) -> Post:
        pass

    @abstractmethod
    async def list_posts(self, page: int, size: int) -> Page[Post]:
        pass

    @abstractmethod
    async def list_user_posts(self, user_id: str, page: int, size: int) -> Page[Post]:
        pass

    @abstractmethod
    async def list_liked_posts(self, user_id: str, page: int, size: int) -> Page[Post]:
        pass

    @abstractmethod
    async def list_starred_posts(self, user_id: str, page: int, size: int) -> Page[Post]:
        pass

    @abstractmethod
    async def search_posts(self, query: str, page: int, size: int) -> Page[Post]:
        pass

    @abstractmethod
    async def get_ranked_feed(
        self,
        page: int,
        size: int,
        viewer_id: Optional[str] = None,
        posts_viewed: int = 0,
    ) -> Page[Post]:
        """Newest-first page of every post, reordered for ``viewer_id`` when given."""
        pass


class ICommentService(ABC):

    @abstractmethod
    async def add_comment(
        self,
        post_id: UUID,
        user_id: str,
        content: str,
        parent_id: Optional[UUID] = None,
    ) -> Comment:
        pass

    @abstractmethod
    async def update_comment(self, comment_id: UUID, user_id: str, content: str) -> Comment:
        pass

    @abstractmethod
    async def delete_comment(self, comment_id: UUID, user_id: str) -> None:
        pass

    @abstractmethod
    async def get_top_level_comments(self, post_id: UUID, page: int, size: int) -> Page[Comment]:
        pass

    @abstractmethod
    async def get_comment_thread(self, post_id: UUID) -> list[CommentNode]:
        pass
