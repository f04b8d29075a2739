"""Dependency injection container."""

import logging
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from realdeal.core.config import settings
from realdeal.core.redis_client import get_redis
from realdeal.domain.entities import EntityKind, ReactionKind
from realdeal.domain.exceptions import NotFoundError
from realdeal.domain.levels import ThresholdTable
from realdeal.domain.repositories import (
    ICacheStore,
    ICommentRepository,
    IGenreRepository,
    IPostRepository,
    IReactionRepository,
    IUserProfileRepository,
)
from realdeal.domain.services import (
    ICommentService,
    IExperienceService,
    IPostService,
    IReactionService,
)
from realdeal.infrastructure.cache.memory import InMemoryCacheStore
from realdeal.infrastructure.cache.redis_store import RedisCacheStore
from realdeal.infrastructure.database.connection import get_db
from realdeal.infrastructure.database.repository import (
    CommentRepository,
    GenreRepository,
    PostRepository,
    ReactionRepository,
    UserProfileRepository,
)
from realdeal.services.cache import CacheCoordinator
from realdeal.services.comment_service import CommentService
from realdeal.services.experience_service import ExperienceService
from realdeal.services.genre_service import GenreService
from realdeal.services.post_service import PostService
from realdeal.services.reaction_service import ReactionService
from realdeal.services.recommendation import RecommendationRanker
from realdeal.services.user_service import UserService

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"


# ---------------------------------------------------------------------------
# Infrastructure providers
# ---------------------------------------------------------------------------
@lru_cache()
def _memory_cache_store() -> InMemoryCacheStore:
    return InMemoryCacheStore(maxsize=settings.memory_cache_maxsize)


def get_cache_store() -> ICacheStore:
    """Return the configured cache backend."""
    if settings.cache_backend == "memory":
        return _memory_cache_store()
    elif settings.cache_backend == "redis":
        return RedisCacheStore(get_redis())
    raise ValueError(f"Unknown cache backend: {settings.cache_backend}")


def get_cache(store: ICacheStore = Depends(get_cache_store)) -> CacheCoordinator:
    return CacheCoordinator(
        store,
        load_timeout=settings.store_timeout_seconds,
        key_prefix=settings.cache_key_prefix,
    )


@lru_cache()
def get_threshold_table() -> ThresholdTable:
    return ThresholdTable(settings.level_thresholds, settings.max_level)


# ---------------------------------------------------------------------------
# Repository providers
# ---------------------------------------------------------------------------
async def get_user_repository(
    session: AsyncSession = Depends(get_db),
) -> IUserProfileRepository:
    return UserProfileRepository(session)


async def get_post_repository(session: AsyncSession = Depends(get_db)) -> IPostRepository:
    return PostRepository(session)


async def get_comment_repository(session: AsyncSession = Depends(get_db)) -> ICommentRepository:
    return CommentRepository(session)


async def get_reaction_repository(
    session: AsyncSession = Depends(get_db),
) -> IReactionRepository:
    return ReactionRepository(session)


async def get_genre_repository(session: AsyncSession = Depends(get_db)) -> IGenreRepository:
    return GenreRepository(session)


# ---------------------------------------------------------------------------
# Service providers
# ---------------------------------------------------------------------------
async def get_experience_service(
    user_repo: IUserProfileRepository = Depends(get_user_repository),
) -> IExperienceService:
    return ExperienceService(
        user_repository=user_repo,
        threshold_table=get_threshold_table(),
        tz=ZoneInfo(settings.daily_bonus_timezone),
    )


async def get_user_service(
    user_repo: IUserProfileRepository = Depends(get_user_repository),
) -> UserService:
    return UserService(user_repo)


async def get_genre_service(
    genre_repo: IGenreRepository = Depends(get_genre_repository),
    post_repo: IPostRepository = Depends(get_post_repository),
    cache: CacheCoordinator = Depends(get_cache),
) -> GenreService:
    return GenreService(genre_repository=genre_repo, post_repository=post_repo, cache=cache)


async def get_reaction_service(
    reaction_repo: IReactionRepository = Depends(get_reaction_repository),
    post_repo: IPostRepository = Depends(get_post_repository),
    comment_repo: ICommentRepository = Depends(get_comment_repository),
    experience: IExperienceService = Depends(get_experience_service),
    cache: CacheCoordinator = Depends(get_cache),
) -> IReactionService:
    return ReactionService(
        reaction_repository=reaction_repo,
        post_repository=post_repo,
        comment_repository=comment_repo,
        experience_service=experience,
        cache=cache,
        exp_rewards={
            (EntityKind.POST, ReactionKind.LIKE): settings.exp_per_like,
            (EntityKind.POST, ReactionKind.STAR): settings.exp_per_star,
            (EntityKind.COMMENT, ReactionKind.LIKE): settings.exp_per_comment_like,
        },
    )


async def get_post_service(
    post_repo: IPostRepository = Depends(get_post_repository),
    genre_repo: IGenreRepository = Depends(get_genre_repository),
    genre_service: GenreService = Depends(get_genre_service),
    experience: IExperienceService = Depends(get_experience_service),
    cache: CacheCoordinator = Depends(get_cache),
) -> IPostService:
    return PostService(
        post_repository=post_repo,
        genre_service=genre_service,
        experience_service=experience,
        ranker=RecommendationRanker(genre_repo),
        cache=cache,
        post_creation_exp=settings.post_creation_exp,
    )


async def get_comment_service(
    comment_repo: ICommentRepository = Depends(get_comment_repository),
    post_repo: IPostRepository = Depends(get_post_repository),
    cache: CacheCoordinator = Depends(get_cache),
) -> ICommentService:
    return CommentService(comment_repository=comment_repo, post_repository=post_repo, cache=cache)


# ---------------------------------------------------------------------------
# Caller identity
# ---------------------------------------------------------------------------
async def get_viewer_id(
    x_user_id: Optional[str] = Header(None, alias=USER_ID_HEADER),
    experience: IExperienceService = Depends(get_experience_service),
) -> Optional[str]:
    """Identify the caller and grant the daily login bonus on their first request of the day.

    Authentication happens upstream; the gateway forwards the user id in
    ``X-User-Id``.  Callers without a profile are served but earn nothing.
    """
    if not x_user_id:
        return None
    try:
        await experience.grant_daily_login_exp(x_user_id, settings.daily_login_bonus)
    except NotFoundError:
        logger.debug("No profile for %s; daily bonus skipped", x_user_id)
    return x_user_id


async def get_acting_user_id(viewer_id: Optional[str] = Depends(get_viewer_id)) -> str:
    """Like ``get_viewer_id`` but the header is mandatory."""
    if viewer_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{USER_ID_HEADER} header required",
        )
    return viewer_id
