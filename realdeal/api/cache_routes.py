"""Cache administration routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from realdeal.core.dependencies import get_cache
from realdeal.services.cache import CacheCoordinator

router = APIRouter(prefix="/cache", tags=["cache"])


@router.delete("/{cache_name}", status_code=status.HTTP_204_NO_CONTENT)
async def invalidate_cache(
    cache_name: str,
    cache: Annotated[CacheCoordinator, Depends(get_cache)],
) -> Response:
    """Drop every entry of one named cache (e.g. ``postsContent``)."""
    await cache.invalidate_listing_cache(cache_name)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
