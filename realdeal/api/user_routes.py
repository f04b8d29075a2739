"""User profile and experience routes."""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, status

from realdeal.api.schemas import (
    DailyBonusResponse,
    ExpAdjustRequest,
    GenreAssignRequest,
    GenreResponse,
    ProgressChangeResponse,
    ProgressResponse,
    UserRegisterRequest,
    UserResponse,
)
from realdeal.core.config import settings
from realdeal.core.dependencies import (
    USER_ID_HEADER,
    get_acting_user_id,
    get_experience_service,
    get_genre_service,
    get_user_service,
)
from realdeal.domain.exceptions import AccessDeniedError, InvalidInputError
from realdeal.domain.services import IExperienceService
from realdeal.services.genre_service import GenreService
from realdeal.services.user_service import UserService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/users", tags=["users"])
experience_router = APIRouter(prefix="/experience", tags=["experience"])


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------
@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    body: UserRegisterRequest,
    user_service: Annotated[UserService, Depends(get_user_service)],
) -> UserResponse:
    profile = await user_service.register_user(body.user_id, body.username, body.email)
    return UserResponse.model_validate(profile)


@router.get("/{user_id}", response_model=UserResponse)
async def get_profile(
    user_id: str,
    user_service: Annotated[UserService, Depends(get_user_service)],
) -> UserResponse:
    return UserResponse.model_validate(await user_service.get_profile(user_id))


@router.get("/{user_id}/progress", response_model=ProgressResponse)
async def get_progress(
    user_id: str,
    experience: Annotated[IExperienceService, Depends(get_experience_service)],
) -> ProgressResponse:
    return ProgressResponse.model_validate(await experience.get_progress(user_id))


@router.get("/{user_id}/genres", response_model=list[GenreResponse])
async def get_user_genres(
    user_id: str,
    genre_service: Annotated[GenreService, Depends(get_genre_service)],
) -> list[GenreResponse]:
    return [GenreResponse.model_validate(g) for g in await genre_service.get_user_genres(user_id)]


@router.put("/{user_id}/genres", response_model=list[GenreResponse])
async def update_user_genres(
    user_id: str,
    body: GenreAssignRequest,
    genre_service: Annotated[GenreService, Depends(get_genre_service)],
    acting_user_id: Annotated[str, Depends(get_acting_user_id)],
) -> list[GenreResponse]:
    if acting_user_id != user_id:
        raise AccessDeniedError("You can only change your own genres")
    genres = await genre_service.update_user_genres(user_id, body.genre_ids)
    return [GenreResponse.model_validate(g) for g in genres]


# ---------------------------------------------------------------------------
# Experience
# ---------------------------------------------------------------------------
@experience_router.post("/daily", response_model=DailyBonusResponse)
async def claim_daily_bonus(
    experience: Annotated[IExperienceService, Depends(get_experience_service)],
    x_user_id: Annotated[Optional[str], Header(alias=USER_ID_HEADER)] = None,
) -> DailyBonusResponse:
    """Explicit daily check-in.  Idempotent within one calendar day."""
    if not x_user_id:
        raise InvalidInputError(f"{USER_ID_HEADER} header required")
    granted = await experience.grant_daily_login_exp(x_user_id, settings.daily_login_bonus)
    progress = await experience.get_progress(x_user_id)
    return DailyBonusResponse(granted=granted, progress=ProgressResponse.model_validate(progress))


@experience_router.post("/{user_id}", response_model=ProgressChangeResponse)
async def adjust_experience(
    user_id: str,
    body: ExpAdjustRequest,
    experience: Annotated[IExperienceService, Depends(get_experience_service)],
) -> ProgressChangeResponse:
    """Operator adjustment of a user's EXP; the level follows automatically."""
    change = await experience.add_exp(user_id, body.delta)
    logger.info("Manual EXP adjustment of %d for %s", body.delta, user_id)
    return ProgressChangeResponse.model_validate(change)
