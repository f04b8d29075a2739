"""Repository implementations."""

import logging
from datetime import date, datetime
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import case, delete, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from realdeal.domain.entities import (
    Comment,
    EntityKind,
    Genre,
    Post,
    ProgressChange,
    ReactionKey,
    ReactionKind,
    UserProfile,
)
from realdeal.domain.exceptions import ConflictError, InvalidInputError, NotFoundError
from realdeal.domain.repositories import (
    ICommentRepository,
    IGenreRepository,
    IPostRepository,
    IReactionRepository,
    IUserProfileRepository,
    PostFilter,
)
from realdeal.infrastructure.database.models import (
    CommentLikeModel,
    CommentModel,
    GenreModel,
    PostGenreModel,
    PostLikeModel,
    PostModel,
    PostStarModel,
    UserGenreModel,
    UserProfileModel,
)

logger = logging.getLogger(__name__)

# Rows may already sit in the session's identity map; reads must see committed state.
_FRESH = {"populate_existing": True}
_NO_SYNC = {"synchronize_session": False}


# ---------------------------------------------------------------------------
# User Profile Repository
# ---------------------------------------------------------------------------
class UserProfileRepository(IUserProfileRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, profile: UserProfile) -> UserProfile:
        db_user = UserProfileModel(
            user_id=profile.user_id,
            username=profile.username,
            email=profile.email,
            experience=profile.experience,
            level=profile.level,
            last_daily_exp=profile.last_daily_exp,
            created_at=profile.created_at,
        )
        self.session.add(db_user)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise ConflictError(f"User already exists: {profile.user_id}") from exc
        await self.session.refresh(db_user)
        return self._to_entity(db_user)

    async def get_by_id(self, user_id: str) -> Optional[UserProfile]:
        result = await self.session.execute(
            select(UserProfileModel)
            .where(UserProfileModel.user_id == user_id)
            .execution_options(**_FRESH)
        )
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    async def exists_by_email(self, email: str) -> bool:
        result = await self.session.execute(
            select(UserProfileModel.user_id).where(UserProfileModel.email == email).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def exists_by_username(self, username: str) -> bool:
        result = await self.session.execute(
            select(UserProfileModel.user_id).where(UserProfileModel.username == username).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def get_usernames(self, user_ids: list[str]) -> dict[str, str]:
        if not user_ids:
            return {}
        result = await self.session.execute(
            select(UserProfileModel.user_id, UserProfileModel.username).where(
                UserProfileModel.user_id.in_(user_ids)
            )
        )
        return {row.user_id: row.username for row in result}

    async def get_profiles(self, user_ids: list[str]) -> dict[str, UserProfile]:
        if not user_ids:
            return {}
        result = await self.session.execute(
            select(UserProfileModel)
            .where(UserProfileModel.user_id.in_(user_ids))
            .execution_options(**_FRESH)
        )
        return {row.user_id: self._to_entity(row) for row in result.scalars()}

    async def adjust_experience(
        self, user_id: str, delta: int, level_for: Callable[[int], int]
    ) -> Optional[ProgressChange]:
        change = await self._apply_experience(user_id, delta, level_for)
        if change is None:
            await self.session.rollback()
            return None
        await self.session.commit()
        return change

    async def claim_daily_bonus(
        self, user_id: str, today: date, bonus: int, level_for: Callable[[int], int]
    ) -> Optional[ProgressChange]:
        result = await self.session.execute(
            update(UserProfileModel)
            .where(
                UserProfileModel.user_id == user_id,
                or_(
                    UserProfileModel.last_daily_exp.is_(None),
                    UserProfileModel.last_daily_exp != today,
                ),
            )
            .values(last_daily_exp=today)
            .execution_options(**_NO_SYNC)
        )
        if result.rowcount != 1:
            await self.session.rollback()
            return None
        change = await self._apply_experience(user_id, bonus, level_for)
        if change is None:
            await self.session.rollback()
            return None
        await self.session.commit()
        return change

    async def _apply_experience(
        self, user_id: str, delta: int, level_for: Callable[[int], int]
    ) -> Optional[ProgressChange]:
        """Add ``delta`` in the store and bring the level in step; caller commits.

        The UPDATE takes the row lock before the balance is read back.
        """
        new_experience = UserProfileModel.experience + delta
        result = await self.session.execute(
            update(UserProfileModel)
            .where(UserProfileModel.user_id == user_id)
            .values(experience=case((new_experience < 0, 0), else_=new_experience))
            .execution_options(**_NO_SYNC)
        )
        if result.rowcount == 0:
            return None
        row = (
            await self.session.execute(
                select(UserProfileModel.experience, UserProfileModel.level).where(
                    UserProfileModel.user_id == user_id
                )
            )
        ).one()
        new_level = level_for(row.experience)
        if new_level != row.level:
            await self.session.execute(
                update(UserProfileModel)
                .where(UserProfileModel.user_id == user_id)
                .values(level=new_level)
                .execution_options(**_NO_SYNC)
            )
        return ProgressChange(
            user_id=user_id,
            experience=row.experience,
            old_level=row.level,
            new_level=new_level,
        )

    @staticmethod
    def _to_entity(model: UserProfileModel) -> UserProfile:
        return UserProfile(
            user_id=model.user_id,
            username=model.username,
            email=model.email,
            experience=model.experience,
            level=model.level,
            last_daily_exp=model.last_daily_exp,
            created_at=model.created_at,
        )


# ---------------------------------------------------------------------------
# Post Repository
# ---------------------------------------------------------------------------
def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class PostRepository(IPostRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, post: Post) -> Post:
        db_post = PostModel(
            id=post.id,
            user_id=post.user_id,
            title=post.title,
            content=post.content,
            likes_count=post.likes_count,
            stars_count=post.stars_count,
            created_at=post.created_at,
        )
        self.session.add(db_post)
        await self.session.commit()
        await self.session.refresh(db_post)
        return self._to_entity(db_post)

    async def get_by_id(self, post_id: UUID) -> Optional[Post]:
        result = await self.session.execute(
            select(PostModel).where(PostModel.id == post_id).execution_options(**_FRESH)
        )
        db_post = result.scalar_one_or_none()
        return self._to_entity(db_post) if db_post else None

    async def update(self, post: Post) -> Post:
        result = await self.session.execute(
            select(PostModel).where(PostModel.id == post.id).execution_options(**_FRESH)
        )
        db_post = result.scalar_one_or_none()
        if db_post is None:
            raise NotFoundError(f"Post not found: {post.id}")
        db_post.title = post.title
        db_post.content = post.content
        await self.session.commit()
        await self.session.refresh(db_post)
        return self._to_entity(db_post)

    async def delete(self, post_id: UUID) -> bool:
        comment_ids = select(CommentModel.id).where(CommentModel.post_id == post_id)
        await self.session.execute(
            delete(CommentLikeModel)
            .where(CommentLikeModel.comment_id.in_(comment_ids))
            .execution_options(**_NO_SYNC)
        )
        for model in (CommentModel, PostLikeModel, PostStarModel, PostGenreModel):
            await self.session.execute(
                delete(model).where(model.post_id == post_id).execution_options(**_NO_SYNC)
            )
        result = await self.session.execute(
            delete(PostModel).where(PostModel.id == post_id).execution_options(**_NO_SYNC)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            return False
        await self.session.commit()
        return True

    async def find_page(self, post_filter: PostFilter, skip: int, limit: int) -> list[Post]:
        stmt = self._apply_filter(select(PostModel), post_filter)
        if post_filter.liked_by is not None:
            stmt = stmt.order_by(PostLikeModel.created_at.desc())
        elif post_filter.starred_by is not None:
            stmt = stmt.order_by(PostStarModel.created_at.desc())
        stmt = stmt.order_by(PostModel.created_at.desc(), PostModel.id)
        result = await self.session.execute(
            stmt.offset(skip).limit(limit).execution_options(**_FRESH)
        )
        return [self._to_entity(post) for post in result.scalars().all()]

    async def count(self, post_filter: PostFilter) -> int:
        stmt = self._apply_filter(select(func.count(PostModel.id)), post_filter)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    @staticmethod
    def _apply_filter(stmt, post_filter: PostFilter):
        if post_filter.author_id is not None:
            stmt = stmt.where(PostModel.user_id == post_filter.author_id)
        if post_filter.liked_by is not None:
            stmt = stmt.join(PostLikeModel, PostLikeModel.post_id == PostModel.id).where(
                PostLikeModel.user_id == post_filter.liked_by
            )
        if post_filter.starred_by is not None:
            stmt = stmt.join(PostStarModel, PostStarModel.post_id == PostModel.id).where(
                PostStarModel.user_id == post_filter.starred_by
            )
        if post_filter.query:
            pattern = _like_pattern(post_filter.query)
            stmt = stmt.where(
                or_(
                    PostModel.title.ilike(pattern, escape="\\"),
                    PostModel.content.ilike(pattern, escape="\\"),
                )
            )
        return stmt

    @staticmethod
    def _to_entity(model: PostModel) -> Post:
        return Post(
            id=model.id,
            user_id=model.user_id,
            title=model.title,
            content=model.content,
            likes_count=model.likes_count,
            stars_count=model.stars_count,
            created_at=model.created_at,
        )


# ---------------------------------------------------------------------------
# Comment Repository
# ---------------------------------------------------------------------------
class CommentRepository(ICommentRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, comment: Comment) -> Comment:
        db_comment = CommentModel(
            id=comment.id,
            post_id=comment.post_id,
            user_id=comment.user_id,
            parent_id=comment.parent_id,
            content=comment.content,
            likes_count=comment.likes_count,
            created_at=comment.created_at,
        )
        self.session.add(db_comment)
        await self.session.commit()
        await self.session.refresh(db_comment)
        return self._to_entity(db_comment)

    async def get_by_id(self, comment_id: UUID) -> Optional[Comment]:
        result = await self.session.execute(
            select(CommentModel).where(CommentModel.id == comment_id).execution_options(**_FRESH)
        )
        db_comment = result.scalar_one_or_none()
        return self._to_entity(db_comment) if db_comment else None

    async def update(self, comment: Comment) -> Comment:
        result = await self.session.execute(
            select(CommentModel).where(CommentModel.id == comment.id).execution_options(**_FRESH)
        )
        db_comment = result.scalar_one_or_none()
        if db_comment is None:
            raise NotFoundError(f"Comment not found: {comment.id}")
        db_comment.content = comment.content
        await self.session.commit()
        await self.session.refresh(db_comment)
        return self._to_entity(db_comment)

    async def delete(self, comment_id: UUID) -> bool:
        post_id = await self.session.scalar(
            select(CommentModel.post_id).where(CommentModel.id == comment_id)
        )
        if post_id is None:
            return False

        rows = await self.session.execute(
            select(CommentModel.id, CommentModel.parent_id).where(CommentModel.post_id == post_id)
        )
        children: dict[UUID, list[UUID]] = {}
        for row in rows:
            if row.parent_id is not None:
                children.setdefault(row.parent_id, []).append(row.id)
        doomed = [comment_id]
        stack = [comment_id]
        while stack:
            for child in children.get(stack.pop(), []):
                doomed.append(child)
                stack.append(child)

        await self.session.execute(
            delete(CommentLikeModel)
            .where(CommentLikeModel.comment_id.in_(doomed))
            .execution_options(**_NO_SYNC)
        )
        await self.session.execute(
            delete(CommentModel).where(CommentModel.id.in_(doomed)).execution_options(**_NO_SYNC)
        )
        await self.session.commit()
        return True

    async def list_top_level(self, post_id: UUID, skip: int, limit: int) -> list[Comment]:
        result = await self.session.execute(
            select(CommentModel)
            .where(CommentModel.post_id == post_id, CommentModel.parent_id.is_(None))
            .order_by(CommentModel.created_at.asc(), CommentModel.id)
            .offset(skip)
            .limit(limit)
            .execution_options(**_FRESH)
        )
        return [self._to_entity(c) for c in result.scalars().all()]

    async def count_top_level(self, post_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count(CommentModel.id)).where(
                CommentModel.post_id == post_id, CommentModel.parent_id.is_(None)
            )
        )
        return result.scalar_one()

    async def list_by_post(self, post_id: UUID) -> list[Comment]:
        result = await self.session.execute(
            select(CommentModel)
            .where(CommentModel.post_id == post_id)
            .order_by(CommentModel.created_at.asc(), CommentModel.id)
            .execution_options(**_FRESH)
        )
        return [self._to_entity(c) for c in result.scalars().all()]

    @staticmethod
    def _to_entity(model: CommentModel) -> Comment:
        return Comment(
            id=model.id,
            post_id=model.post_id,
            user_id=model.user_id,
            content=model.content,
            parent_id=model.parent_id,
            likes_count=model.likes_count,
            created_at=model.created_at,
        )


# ---------------------------------------------------------------------------
# Reaction Repository
# ---------------------------------------------------------------------------
class _ReactionTable:
    """Where one kind of reaction is recorded and counted."""

    def __init__(self, record, entity_column: str, target, counter: str):
        self.record = record
        self.entity_column = entity_column
        self.target = target
        self.counter = counter

    def record_where(self, key: ReactionKey):
        return (
            getattr(self.record, self.entity_column) == key.entity_id,
            self.record.user_id == key.user_id,
        )

    def counter_update(self, entity_id: UUID, delta: int):
        column = getattr(self.target, self.counter)
        return (
            update(self.target)
            .where(self.target.id == entity_id)
            .values({self.counter: column + delta})
            .execution_options(**_NO_SYNC)
        )


_REACTION_TABLES = {
    (EntityKind.POST, ReactionKind.LIKE): _ReactionTable(
        PostLikeModel, "post_id", PostModel, "likes_count"
    ),
    (EntityKind.POST, ReactionKind.STAR): _ReactionTable(
        PostStarModel, "post_id", PostModel, "stars_count"
    ),
    (EntityKind.COMMENT, ReactionKind.LIKE): _ReactionTable(
        CommentLikeModel, "comment_id", CommentModel, "likes_count"
    ),
}


class ReactionRepository(IReactionRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def exists(self, key: ReactionKey) -> bool:
        table = self._table(key.entity_kind, key.reaction_kind)
        result = await self.session.execute(
            select(table.record.user_id).where(*table.record_where(key)).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def insert_and_increment(self, key: ReactionKey) -> None:
        table = self._table(key.entity_kind, key.reaction_kind)
        try:
            await self.session.execute(
                insert(table.record).values(
                    {
                        table.entity_column: key.entity_id,
                        "user_id": key.user_id,
                        "created_at": datetime.utcnow(),
                    }
                )
            )
            result = await self.session.execute(table.counter_update(key.entity_id, 1))
        except IntegrityError as exc:
            await self.session.rollback()
            raise ConflictError(f"Reaction already recorded: {key}") from exc
        if result.rowcount == 0:
            await self.session.rollback()
            raise NotFoundError(f"{key.entity_kind.value.capitalize()} not found: {key.entity_id}")
        await self.session.commit()

    async def delete_and_decrement(self, key: ReactionKey) -> None:
        table = self._table(key.entity_kind, key.reaction_kind)
        result = await self.session.execute(
            delete(table.record).where(*table.record_where(key)).execution_options(**_NO_SYNC)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            raise ConflictError(f"No reaction to remove: {key}")
        await self.session.execute(table.counter_update(key.entity_id, -1))
        await self.session.commit()

    async def get_counter(
        self, entity_kind: EntityKind, entity_id: UUID, reaction_kind: ReactionKind
    ) -> Optional[int]:
        table = self._table(entity_kind, reaction_kind)
        result = await self.session.execute(
            select(getattr(table.target, table.counter)).where(table.target.id == entity_id)
        )
        return result.scalar_one_or_none()

    async def count_records(
        self, entity_kind: EntityKind, entity_id: UUID, reaction_kind: ReactionKind
    ) -> int:
        table = self._table(entity_kind, reaction_kind)
        result = await self.session.execute(
            select(func.count()).select_from(table.record).where(
                getattr(table.record, table.entity_column) == entity_id
            )
        )
        return result.scalar_one()

    @staticmethod
    def _table(entity_kind: EntityKind, reaction_kind: ReactionKind) -> _ReactionTable:
        table = _REACTION_TABLES.get((entity_kind, reaction_kind))
        if table is None:
            raise InvalidInputError(
                f"{reaction_kind.value} is not supported on a {entity_kind.value}"
            )
        return table


# ---------------------------------------------------------------------------
# Genre Repository
# ---------------------------------------------------------------------------
class GenreRepository(IGenreRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, name: str, description: Optional[str] = None) -> Genre:
        db_genre = GenreModel(name=name, description=description)
        self.session.add(db_genre)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise ConflictError(f"Genre already exists: {name}") from exc
        await self.session.refresh(db_genre)
        return self._to_entity(db_genre)

    async def list_all(self) -> list[Genre]:
        result = await self.session.execute(select(GenreModel).order_by(GenreModel.id))
        return [self._to_entity(g) for g in result.scalars().all()]

    async def get_by_ids(self, genre_ids: list[int]) -> list[Genre]:
        if not genre_ids:
            return []
        result = await self.session.execute(
            select(GenreModel).where(GenreModel.id.in_(genre_ids)).order_by(GenreModel.id)
        )
        return [self._to_entity(g) for g in result.scalars().all()]

    async def get_user_genre_ids(self, user_id: str) -> set[int]:
        result = await self.session.execute(
            select(UserGenreModel.genre_id).where(UserGenreModel.user_id == user_id)
        )
        return set(result.scalars().all())

    async def get_post_genre_ids(self, post_id: UUID) -> set[int]:
        result = await self.session.execute(
            select(PostGenreModel.genre_id).where(PostGenreModel.post_id == post_id)
        )
        return set(result.scalars().all())

    async def replace_user_genres(self, user_id: str, genre_ids: list[int]) -> None:
        await self.session.execute(
            delete(UserGenreModel)
            .where(UserGenreModel.user_id == user_id)
            .execution_options(**_NO_SYNC)
        )
        if genre_ids:
            await self.session.execute(
                insert(UserGenreModel),
                [{"user_id": user_id, "genre_id": gid} for gid in genre_ids],
            )
        await self.session.commit()

    async def replace_post_genres(self, post_id: UUID, genre_ids: list[int]) -> None:
        await self.session.execute(
            delete(PostGenreModel)
            .where(PostGenreModel.post_id == post_id)
            .execution_options(**_NO_SYNC)
        )
        if genre_ids:
            await self.session.execute(
                insert(PostGenreModel),
                [{"post_id": post_id, "genre_id": gid} for gid in genre_ids],
            )
        await self.session.commit()

    @staticmethod
    def _to_entity(model: GenreModel) -> Genre:
        return Genre(id=model.id, name=model.name, description=model.description)
