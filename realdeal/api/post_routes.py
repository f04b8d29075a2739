"""Post API routes (feed, CRUD, reactions, listings, genres)."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from realdeal.api.schemas import (
    GenreAssignRequest,
    GenreResponse,
    PostCreate,
    PostPageResponse,
    PostResponse,
    PostUpdate,
    PostWithUserResponse,
    ReactionResponse,
    ReactionStatusResponse,
)
from realdeal.core.config import settings
from realdeal.core.dependencies import (
    get_acting_user_id,
    get_genre_service,
    get_post_service,
    get_reaction_service,
    get_user_service,
    get_viewer_id,
)
from realdeal.domain.entities import EntityKind, Page, Post, ReactionKind
from realdeal.domain.exceptions import AccessDeniedError
from realdeal.domain.services import IPostService, IReactionService
from realdeal.services.genre_service import GenreService
from realdeal.services.user_service import UserService

router = APIRouter(prefix="/posts", tags=["posts"])

PageParam = Annotated[int, Query(ge=0, description="Zero-based page index")]
SizeParam = Annotated[int, Query(ge=1, le=settings.max_page_size)]


class PostPresenter:
    """Builds post responses enriched with author and viewer context."""

    def __init__(
        self,
        user_service: UserService,
        reaction_service: IReactionService,
        genre_service: GenreService,
    ):
        self.user_service = user_service
        self.reaction_service = reaction_service
        self.genre_service = genre_service

    async def present(
        self, posts: list[Post], viewer_id: Optional[str]
    ) -> list[PostWithUserResponse]:
        authors = await self.user_service.get_authors([p.user_id for p in posts])
        responses = []
        for post in posts:
            liked = starred = False
            if viewer_id:
                liked = await self.reaction_service.has_reacted(
                    post.id, EntityKind.POST, ReactionKind.LIKE, viewer_id
                )
                starred = await self.reaction_service.has_reacted(
                    post.id, EntityKind.POST, ReactionKind.STAR, viewer_id
                )
            genres = await self.genre_service.get_post_genres(post.id)
            author = authors[post.user_id]
            responses.append(
                PostWithUserResponse(
                    **PostResponse.model_validate(post).model_dump(),
                    username=author.username,
                    level=author.level,
                    liked=liked,
                    starred=starred,
                    genres=[GenreResponse.model_validate(g) for g in genres],
                )
            )
        return responses

    async def present_page(self, page: Page[Post], viewer_id: Optional[str]) -> PostPageResponse:
        return PostPageResponse(
            items=await self.present(page.items, viewer_id),
            total=page.total,
            page=page.page,
            size=page.size,
            total_pages=page.total_pages,
        )


def get_post_presenter(
    user_service: UserService = Depends(get_user_service),
    reaction_service: IReactionService = Depends(get_reaction_service),
    genre_service: GenreService = Depends(get_genre_service),
) -> PostPresenter:
    return PostPresenter(user_service, reaction_service, genre_service)


Presenter = Annotated[PostPresenter, Depends(get_post_presenter)]
Viewer = Annotated[Optional[str], Depends(get_viewer_id)]


# ---------------------------------------------------------------------------
# Feed & listings
# ---------------------------------------------------------------------------
@router.get("", response_model=PostPageResponse)
async def get_feed(
    post_service: Annotated[IPostService, Depends(get_post_service)],
    presenter: Presenter,
    viewer_id: Viewer,
    page: PageParam = 0,
    size: SizeParam = settings.default_page_size,
    posts_viewed: Annotated[int, Query(ge=0)] = 0,
) -> PostPageResponse:
    """Newest posts, reordered by the viewer's preferred genres when identified."""
    feed = await post_service.get_ranked_feed(page, size, viewer_id, posts_viewed)
    return await presenter.present_page(feed, viewer_id)


@router.get("/search", response_model=PostPageResponse)
async def search_posts(
    q: Annotated[str, Query(min_length=1)],
    post_service: Annotated[IPostService, Depends(get_post_service)],
    presenter: Presenter,
    viewer_id: Viewer,
    page: PageParam = 0,
    size: SizeParam = settings.default_page_size,
) -> PostPageResponse:
    posts = await post_service.search_posts(q, page, size)
    return await presenter.present_page(posts, viewer_id)


@router.get("/user/{user_id}", response_model=PostPageResponse)
async def list_user_posts(
    user_id: str,
    post_service: Annotated[IPostService, Depends(get_post_service)],
    presenter: Presenter,
    viewer_id: Viewer,
    page: PageParam = 0,
    size: SizeParam = settings.default_page_size,
) -> PostPageResponse:
    posts = await post_service.list_user_posts(user_id, page, size)
    return await presenter.present_page(posts, viewer_id)


@router.get("/liked", response_model=PostPageResponse)
async def list_liked_posts(
    post_service: Annotated[IPostService, Depends(get_post_service)],
    presenter: Presenter,
    user_id: Annotated[str, Depends(get_acting_user_id)],
    page: PageParam = 0,
    size: SizeParam = settings.default_page_size,
) -> PostPageResponse:
    posts = await post_service.list_liked_posts(user_id, page, size)
    return await presenter.present_page(posts, user_id)


@router.get("/starred", response_model=PostPageResponse)
async def list_starred_posts(
    post_service: Annotated[IPostService, Depends(get_post_service)],
    presenter: Presenter,
    user_id: Annotated[str, Depends(get_acting_user_id)],
    page: PageParam = 0,
    size: SizeParam = settings.default_page_size,
) -> PostPageResponse:
    posts = await post_service.list_starred_posts(user_id, page, size)
    return await presenter.present_page(posts, user_id)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------
@router.post("", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    body: PostCreate,
    post_service: Annotated[IPostService, Depends(get_post_service)],
    user_id: Annotated[str, Depends(get_acting_user_id)],
) -> PostResponse:
    post = await post_service.create_post(user_id, body.title, body.content, body.genre_ids)
    return PostResponse.model_validate(post)


@router.get("/{post_id}", response_model=PostWithUserResponse)
async def get_post(
    post_id: UUID,
    post_service: Annotated[IPostService, Depends(get_post_service)],
    presenter: Presenter,
    viewer_id: Viewer,
) -> PostWithUserResponse:
    post = await post_service.get_post(post_id)
    return (await presenter.present([post], viewer_id))[0]


@router.put("/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: UUID,
    body: PostUpdate,
    post_service: Annotated[IPostService, Depends(get_post_service)],
    user_id: Annotated[str, Depends(get_acting_user_id)],
) -> PostResponse:
    post = await post_service.update_post(post_id, user_id, body.title, body.content)
    return PostResponse.model_validate(post)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: UUID,
    post_service: Annotated[IPostService, Depends(get_post_service)],
    user_id: Annotated[str, Depends(get_acting_user_id)],
) -> Response:
    await post_service.delete_post(post_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Reactions
# ---------------------------------------------------------------------------
@router.post("/{post_id}/like", response_model=ReactionResponse)
async def toggle_like(
    post_id: UUID,
    reaction_service: Annotated[IReactionService, Depends(get_reaction_service)],
    user_id: Annotated[str, Depends(get_acting_user_id)],
) -> ReactionResponse:
    reacted, count = await reaction_service.toggle_reaction(
        post_id, EntityKind.POST, ReactionKind.LIKE, user_id
    )
    return ReactionResponse(reacted=reacted, count=count)


@router.get("/{post_id}/like", response_model=ReactionStatusResponse)
async def has_liked(
    post_id: UUID,
    reaction_service: Annotated[IReactionService, Depends(get_reaction_service)],
    user_id: Annotated[str, Depends(get_acting_user_id)],
) -> ReactionStatusResponse:
    reacted = await reaction_service.has_reacted(
        post_id, EntityKind.POST, ReactionKind.LIKE, user_id
    )
    return ReactionStatusResponse(reacted=reacted)


@router.post("/{post_id}/star", response_model=ReactionResponse)
async def toggle_star(
    post_id: UUID,
    reaction_service: Annotated[IReactionService, Depends(get_reaction_service)],
    user_id: Annotated[str, Depends(get_acting_user_id)],
) -> ReactionResponse:
    reacted, count = await reaction_service.toggle_reaction(
        post_id, EntityKind.POST, ReactionKind.STAR, user_id
    )
    return ReactionResponse(reacted=reacted, count=count)


@router.get("/{post_id}/star", response_model=ReactionStatusResponse)
async def has_starred(
    post_id: UUID,
    reaction_service: Annotated[IReactionService, Depends(get_reaction_service)],
    user_id: Annotated[str, Depends(get_acting_user_id)],
) -> ReactionStatusResponse:
    reacted = await reaction_service.has_reacted(
        post_id, EntityKind.POST, ReactionKind.STAR, user_id
    )
    return ReactionStatusResponse(reacted=reacted)


# ---------------------------------------------------------------------------
# Genres
# ---------------------------------------------------------------------------
@router.get("/{post_id}/genres", response_model=list[GenreResponse])
async def get_post_genres(
    post_id: UUID,
    genre_service: Annotated[GenreService, Depends(get_genre_service)],
) -> list[GenreResponse]:
    genres = await genre_service.get_post_genres(post_id)
    return [GenreResponse.model_validate(g) for g in genres]


@router.put("/{post_id}/genres", response_model=list[GenreResponse])
async def assign_post_genres(
    post_id: UUID,
    body: GenreAssignRequest,
    post_service: Annotated[IPostService, Depends(get_post_service)],
    genre_service: Annotated[GenreService, Depends(get_genre_service)],
    user_id: Annotated[str, Depends(get_acting_user_id)],
) -> list[GenreResponse]:
    post = await post_service.get_post(post_id)
    if post.user_id != user_id:
        raise AccessDeniedError("You can only tag your own posts")
    genres = await genre_service.assign_genres_to_post(post_id, body.genre_ids)
    return [GenreResponse.model_validate(g) for g in genres]
