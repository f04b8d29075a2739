"""Comment API routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from realdeal.api.schemas import (
    CommentCreate,
    CommentPageResponse,
    CommentResponse,
    CommentThreadResponse,
    CommentUpdate,
    ReactionResponse,
    ReactionStatusResponse,
)
from realdeal.core.config import settings
from realdeal.core.dependencies import (
    get_acting_user_id,
    get_comment_service,
    get_reaction_service,
)
from realdeal.domain.entities import EntityKind, ReactionKind
from realdeal.domain.services import ICommentService, IReactionService

router = APIRouter(tags=["comments"])


@router.get("/posts/{post_id}/comments", response_model=CommentPageResponse)
async def list_top_level_comments(
    post_id: UUID,
    comment_service: Annotated[ICommentService, Depends(get_comment_service)],
    page: Annotated[int, Query(ge=0)] = 0,
    size: Annotated[int, Query(ge=1, le=settings.max_page_size)] = settings.default_page_size,
) -> CommentPageResponse:
    comments = await comment_service.get_top_level_comments(post_id, page, size)
    return CommentPageResponse(
        items=[CommentResponse.model_validate(c) for c in comments.items],
        total=comments.total,
        page=comments.page,
        size=comments.size,
        total_pages=comments.total_pages,
    )


@router.get("/posts/{post_id}/comments/thread", response_model=list[CommentThreadResponse])
async def get_comment_thread(
    post_id: UUID,
    comment_service: Annotated[ICommentService, Depends(get_comment_service)],
) -> list[CommentThreadResponse]:
    """Every comment of the post, replies nested under their parents."""
    thread = await comment_service.get_comment_thread(post_id)
    return [CommentThreadResponse.model_validate(node) for node in thread]


@router.post(
    "/posts/{post_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    post_id: UUID,
    body: CommentCreate,
    comment_service: Annotated[ICommentService, Depends(get_comment_service)],
    user_id: Annotated[str, Depends(get_acting_user_id)],
) -> CommentResponse:
    comment = await comment_service.add_comment(post_id, user_id, body.content, body.parent_id)
    return CommentResponse.model_validate(comment)


@router.put("/comments/{comment_id}", response_model=CommentResponse)
async def update_comment(
    comment_id: UUID,
    body: CommentUpdate,
    comment_service: Annotated[ICommentService, Depends(get_comment_service)],
    user_id: Annotated[str, Depends(get_acting_user_id)],
) -> CommentResponse:
    comment = await comment_service.update_comment(comment_id, user_id, body.content)
    return CommentResponse.model_validate(comment)


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: UUID,
    comment_service: Annotated[ICommentService, Depends(get_comment_service)],
    user_id: Annotated[str, Depends(get_acting_user_id)],
) -> Response:
    await comment_service.delete_comment(comment_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/comments/{comment_id}/like", response_model=ReactionResponse)
async def toggle_comment_like(
    comment_id: UUID,
    reaction_service: Annotated[IReactionService, Depends(get_reaction_service)],
    user_id: Annotated[str, Depends(get_acting_user_id)],
) -> ReactionResponse:
    reacted, count = await reaction_service.toggle_reaction(
        comment_id, EntityKind.COMMENT, ReactionKind.LIKE, user_id
    )
    return ReactionResponse(reacted=reacted, count=count)


@router.get("/comments/{comment_id}/like", response_model=ReactionStatusResponse)
async def has_liked_comment(
    comment_id: UUID,
    reaction_service: Annotated[IReactionService, Depends(get_reaction_service)],
    user_id: Annotated[str, Depends(get_acting_user_id)],
) -> ReactionStatusResponse:
    reacted = await reaction_service.has_reacted(
        comment_id, EntityKind.COMMENT, ReactionKind.LIKE, user_id
    )
    return ReactionStatusResponse(reacted=reacted)
