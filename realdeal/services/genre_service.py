"""Genre catalogue, user preferences and post tagging."""

import logging
from typing import Optional
from uuid import UUID

from realdeal.domain.entities import Genre
from realdeal.domain.exceptions import InvalidInputError, NotFoundError
from realdeal.domain.repositories import IGenreRepository, IPostRepository
from realdeal.services.cache import CacheCoordinator, Mutation

logger = logging.getLogger(__name__)

MAX_USER_GENRES = 3
MAX_POST_GENRES = 3


class GenreService:
    """Users pick up to three genres; every tagged post carries one to three."""

    def __init__(
        self,
        genre_repository: IGenreRepository,
        post_repository: IPostRepository,
        cache: CacheCoordinator,
    ):
        self.genre_repository = genre_repository
        self.post_repository = post_repository
        self.cache = cache

    async def list_genres(self) -> list[Genre]:
        return await self.genre_repository.list_all()

    async def create_genre(self, name: str, description: Optional[str] = None) -> Genre:
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("Genre name required")
        genre = await self.genre_repository.create(name, description)
        logger.info("Genre created: %s (%d)", genre.name, genre.id)
        return genre

    async def get_user_genres(self, user_id: str) -> list[Genre]:
        ids = await self.genre_repository.get_user_genre_ids(user_id)
        return await self.genre_repository.get_by_ids(sorted(ids))

    async def update_user_genres(self, user_id: str, genre_ids: list[int]) -> list[Genre]:
        ids = await self.validate_genre_ids(genre_ids, minimum=0, maximum=MAX_USER_GENRES)
        await self.genre_repository.replace_user_genres(user_id, ids)
        logger.info("User %s now prefers genres %s", user_id, ids)
        return await self.genre_repository.get_by_ids(ids)

    async def get_post_genres(self, post_id: UUID) -> list[Genre]:
        ids = await self.genre_repository.get_post_genre_ids(post_id)
        return await self.genre_repository.get_by_ids(sorted(ids))

    async def assign_genres_to_post(self, post_id: UUID, genre_ids: list[int]) -> list[Genre]:
        ids = await self.validate_genre_ids(genre_ids, minimum=1, maximum=MAX_POST_GENRES)
        if await self.post_repository.get_by_id(post_id) is None:
            raise NotFoundError(f"Post not found: {post_id}")
        await self.genre_repository.replace_post_genres(post_id, ids)
        await self.cache.invalidate(Mutation.POST_GENRES_ASSIGNED, post_id=post_id)
        logger.info("Post %s tagged with genres %s", post_id, ids)
        return await self.genre_repository.get_by_ids(ids)

    async def validate_genre_ids(
        self, genre_ids: list[int], minimum: int, maximum: int
    ) -> list[int]:
        """Deduplicate (keeping order) and check count and existence."""
        ids = list(dict.fromkeys(genre_ids))
        if not minimum <= len(ids) <= maximum:
            if minimum:
                raise InvalidInputError(f"Between {minimum} and {maximum} genres are required")
            raise InvalidInputError(f"At most {maximum} genres may be selected")
        if ids:
            known = {g.id for g in await self.genre_repository.get_by_ids(ids)}
            unknown = [i for i in ids if i not in known]
            if unknown:
                raise InvalidInputError(f"Unknown genre ids: {unknown}")
        return ids
