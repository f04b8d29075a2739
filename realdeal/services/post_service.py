"""Post service: CRUD, cached listings and the ranked feed."""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from realdeal.domain.entities import Page, Post
from realdeal.domain.exceptions import AccessDeniedError, InvalidInputError, NotFoundError
from realdeal.domain.repositories import IPostRepository, PostFilter
from realdeal.domain.services import IExperienceService, IPostService
from realdeal.services.cache import CacheCoordinator, CacheName, Mutation
from realdeal.services.genre_service import MAX_POST_GENRES, GenreService
from realdeal.services.recommendation import RecommendationRanker

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 120


class PostService(IPostService):
    """Post lifecycle plus every paginated post listing.

    Listings are served through the split content/count caches; each write
    invalidates through the coordinator's eviction table.
    """

    def __init__(
        self,
        post_repository: IPostRepository,
        genre_service: GenreService,
        experience_service: IExperienceService,
        ranker: RecommendationRanker,
        cache: CacheCoordinator,
        post_creation_exp: int = 15,
    ):
        self.post_repository = post_repository
        self.genre_service = genre_service
        self.experience_service = experience_service
        self.ranker = ranker
        self.cache = cache
        self.post_creation_exp = post_creation_exp

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def create_post(
        self,
        user_id: str,
        title: str,
        content: str,
        genre_ids: Optional[list[int]] = None,
    ) -> Post:
        if not user_id or not user_id.strip():
            raise InvalidInputError("userId required")
        title, content = self._validate_text(title, content)
        ids: list[int] = []
        if genre_ids:
            ids = await self.genre_service.validate_genre_ids(
                genre_ids, minimum=1, maximum=MAX_POST_GENRES
            )

        post = Post(
            id=uuid4(),
            user_id=user_id,
            title=title,
            content=content,
            created_at=datetime.utcnow(),
        )
        created = await self.post_repository.create(post)
        if ids:
            await self.genre_service.assign_genres_to_post(created.id, ids)
        await self.cache.invalidate(Mutation.POST_CREATED, post_id=created.id, user_id=user_id)
        logger.info("Post created: %s by %s", created.id, user_id)

        if self.post_creation_exp:
            try:
                await self.experience_service.add_exp(user_id, self.post_creation_exp)
            except NotFoundError:
                logger.warning("No profile for author %s; post creation EXP not applied", user_id)
        return created

    async def update_post(self, post_id: UUID, user_id: str, title: str, content: str) -> Post:
        title, content = self._validate_text(title, content)
        post = await self._owned_post(post_id, user_id, "edit")
        post.title = title
        post.content = content
        updated = await self.post_repository.update(post)
        await self.cache.invalidate(Mutation.POST_UPDATED, post_id=post_id, user_id=user_id)
        logger.info("Post updated: %s", post_id)
        return updated

    async def delete_post(self, post_id: UUID, user_id: str) -> None:
        await self._owned_post(post_id, user_id, "delete")
        deleted = await self.post_repository.delete(post_id)
        if not deleted:
            raise NotFoundError(f"Post not found: {post_id}")
        await self.cache.invalidate(Mutation.POST_DELETED, post_id=post_id, user_id=user_id)
        logger.info("Post deleted: %s", post_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_post(self, post_id: UUID) -> Post:
        async def load() -> Post:
            post = await self.post_repository.get_by_id(post_id)
            if post is None:
                raise NotFoundError(f"Post not found: {post_id}")
            return post

        return await self.cache.get_or_load(CacheName.SINGLE_POST, str(post_id), load)

    async def list_posts(self, page: int, size: int) -> Page[Post]:
        return await self._listing(
            CacheName.POSTS_CONTENT, CacheName.POSTS_COUNT, "all", PostFilter(), page, size
        )

    async def list_user_posts(self, user_id: str, page: int, size: int) -> Page[Post]:
        return await self._listing(
            CacheName.USER_POSTS_CONTENT,
            CacheName.USER_POSTS_COUNT,
            user_id,
            PostFilter(author_id=user_id),
            page,
            size,
        )

    async def list_liked_posts(self, user_id: str, page: int, size: int) -> Page[Post]:
        return await self._listing(
            CacheName.LIKED_POSTS_CONTENT,
            CacheName.LIKED_POSTS_COUNT,
            user_id,
            PostFilter(liked_by=user_id),
            page,
            size,
        )

    async def list_starred_posts(self, user_id: str, page: int, size: int) -> Page[Post]:
        return await self._listing(
            CacheName.STARRED_POSTS_CONTENT,
            CacheName.STARRED_POSTS_COUNT,
            user_id,
            PostFilter(starred_by=user_id),
            page,
            size,
        )

    async def search_posts(self, query: str, page: int, size: int) -> Page[Post]:
        normalized = " ".join((query or "").split()).lower()
        if not normalized:
            raise InvalidInputError("Search query must not be blank")
        return await self._listing(
            CacheName.SEARCH_POSTS_CONTENT,
            CacheName.SEARCH_POSTS_COUNT,
            f"q={normalized}",
            PostFilter(query=normalized),
            page,
            size,
        )

    async def get_ranked_feed(
        self,
        page: int,
        size: int,
        viewer_id: Optional[str] = None,
        posts_viewed: int = 0,
    ) -> Page[Post]:
        listing = await self.list_posts(page, size)
        if viewer_id is None:
            return listing
        ranked = await self.ranker.rank(listing.items, viewer_id, posts_viewed)
        return Page(items=list(ranked), total=listing.total, page=listing.page, size=listing.size)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _listing(
        self,
        content_cache: CacheName,
        count_cache: CacheName,
        scope: str,
        post_filter: PostFilter,
        page: int,
        size: int,
    ) -> Page[Post]:
        return await self.cache.get_page(
            content_cache,
            count_cache,
            scope,
            page,
            size,
            lambda skip, limit: self.post_repository.find_page(post_filter, skip, limit),
            lambda: self.post_repository.count(post_filter),
        )

    async def _owned_post(self, post_id: UUID, user_id: str, action: str) -> Post:
        post = await self.post_repository.get_by_id(post_id)
        if post is None:
            raise NotFoundError(f"Post not found: {post_id}")
        if post.user_id != user_id:
            raise AccessDeniedError(f"You can only {action} your own posts")
        return post

    @staticmethod
    def _validate_text(title: str, content: str) -> tuple[str, str]:
        title = (title or "").strip()
        content = (content or "").strip()
        if not title:
            raise InvalidInputError("title required")
        if len(title) > MAX_TITLE_LENGTH:
            raise InvalidInputError(f"title must be at most {MAX_TITLE_LENGTH} characters")
        if not content:
            raise InvalidInputError("content required")
        return title, content
