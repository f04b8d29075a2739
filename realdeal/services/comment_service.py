"""Comment service: threaded comments on posts."""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from realdeal.domain.entities import Comment, CommentNode, Page
from realdeal.domain.exceptions import AccessDeniedError, InvalidInputError, NotFoundError
from realdeal.domain.repositories import ICommentRepository, IPostRepository
from realdeal.domain.services import ICommentService
from realdeal.services.cache import CacheCoordinator, CacheName, Mutation

logger = logging.getLogger(__name__)


def build_thread(comments: list[Comment]) -> list[CommentNode]:
    """Attach replies to their parents.

    Input order is kept within each level, so an oldest-first list yields
    oldest-first threads.  Replies whose parent is missing are dropped.
    """
    nodes = {c.id: CommentNode(comment=c) for c in comments}
    roots: list[CommentNode] = []
    for comment in comments:
        node = nodes[comment.id]
        if comment.parent_id is None:
            roots.append(node)
            continue
        parent = nodes.get(comment.parent_id)
        if parent is None:
            logger.warning("Orphan comment %s (parent %s)", comment.id, comment.parent_id)
            continue
        parent.replies.append(node)
    return roots


class CommentService(ICommentService):
    def __init__(
        self,
        comment_repository: ICommentRepository,
        post_repository: IPostRepository,
        cache: CacheCoordinator,
    ):
        self.comment_repository = comment_repository
        self.post_repository = post_repository
        self.cache = cache

    async def add_comment(
        self,
        post_id: UUID,
        user_id: str,
        content: str,
        parent_id: Optional[UUID] = None,
    ) -> Comment:
        content = self._validate_content(content)
        if await self.post_repository.get_by_id(post_id) is None:
            raise NotFoundError(f"Post not found: {post_id}")

        if parent_id is not None:
            parent = await self.comment_repository.get_by_id(parent_id)
            if parent is None:
                raise NotFoundError(f"Parent comment not found: {parent_id}")
            if parent.post_id != post_id:
                raise InvalidInputError("Parent comment belongs to a different post")

        comment = Comment(
            id=uuid4(),
            post_id=post_id,
            user_id=user_id,
            content=content,
            parent_id=parent_id,
            created_at=datetime.utcnow(),
        )
        created = await self.comment_repository.create(comment)
        await self.cache.invalidate(Mutation.COMMENT_CREATED, post_id=post_id)
        logger.info("Comment %s added to post %s by %s", created.id, post_id, user_id)
        return created

    async def update_comment(self, comment_id: UUID, user_id: str, content: str) -> Comment:
        content = self._validate_content(content)
        comment = await self._owned_comment(comment_id, user_id, "edit")
        comment.content = content
        updated = await self.comment_repository.update(comment)
        await self.cache.invalidate(Mutation.COMMENT_UPDATED, comment_id=comment_id)
        return updated

    async def delete_comment(self, comment_id: UUID, user_id: str) -> None:
        comment = await self._owned_comment(comment_id, user_id, "delete")

        # Collect the subtree first so every removed comment's like status is evicted.
        thread = await self.comment_repository.list_by_post(comment.post_id)
        doomed = _subtree_ids(thread, comment_id)

        if not await self.comment_repository.delete(comment_id):
            raise NotFoundError(f"Comment not found: {comment_id}")
        await self.cache.invalidate(Mutation.COMMENT_DELETED, comment_id=comment_id)
        for removed_id in doomed:
            if removed_id != comment_id:
                await self.cache.evict_prefix(CacheName.COMMENT_LIKES, f"{removed_id}:")
        logger.info("Comment %s deleted with %d replies", comment_id, len(doomed) - 1)

    async def get_top_level_comments(self, post_id: UUID, page: int, size: int) -> Page[Comment]:
        return await self.cache.get_page(
            CacheName.COMMENT_CONTENT,
            CacheName.COMMENT_COUNT,
            str(post_id),
            page,
            size,
            lambda skip, limit: self.comment_repository.list_top_level(post_id, skip, limit),
            lambda: self.comment_repository.count_top_level(post_id),
        )

    async def get_comment_thread(self, post_id: UUID) -> list[CommentNode]:
        if await self.post_repository.get_by_id(post_id) is None:
            raise NotFoundError(f"Post not found: {post_id}")
        comments = await self.cache.get_or_load(
            CacheName.ALL_COMMENTS,
            str(post_id),
            lambda: self.comment_repository.list_by_post(post_id),
        )
        return build_thread(comments)

    async def _owned_comment(self, comment_id: UUID, user_id: str, action: str) -> Comment:
        comment = await self.comment_repository.get_by_id(comment_id)
        if comment is None:
            raise NotFoundError(f"Comment not found: {comment_id}")
        if comment.user_id != user_id:
            raise AccessDeniedError(f"You can only {action} your own comments")
        return comment

    @staticmethod
    def _validate_content(content: str) -> str:
        content = (content or "").strip()
        if not content:
            raise InvalidInputError("content required")
        return content


def _subtree_ids(comments: list[Comment], root_id: UUID) -> list[UUID]:
    children: dict[UUID, list[UUID]] = {}
    for c in comments:
        if c.parent_id is not None:
            children.setdefault(c.parent_id, []).append(c.id)
    result = [root_id]
    stack = [root_id]
    while stack:
        for child in children.get(stack.pop(), []):
            result.append(child)
            stack.append(child)
    return result
