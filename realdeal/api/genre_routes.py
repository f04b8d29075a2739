"""Genre catalogue routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from realdeal.api.schemas import GenreCreate, GenreResponse
from realdeal.core.dependencies import get_genre_service
from realdeal.services.genre_service import GenreService

router = APIRouter(prefix="/genres", tags=["genres"])


@router.get("", response_model=list[GenreResponse])
async def list_genres(
    genre_service: Annotated[GenreService, Depends(get_genre_service)],
) -> list[GenreResponse]:
    return [GenreResponse.model_validate(g) for g in await genre_service.list_genres()]


@router.post("", response_model=GenreResponse, status_code=status.HTTP_201_CREATED)
async def create_genre(
    body: GenreCreate,
    genre_service: Annotated[GenreService, Depends(get_genre_service)],
) -> GenreResponse:
    genre = await genre_service.create_genre(body.name, body.description)
    return GenreResponse.model_validate(genre)
