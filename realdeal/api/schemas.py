"""Pydantic schemas for API requests and responses."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# ---------------------------------------------------------------------------
# Users & experience
# ---------------------------------------------------------------------------
class UserRegisterRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=50)
    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr


class UserResponse(BaseModel):
    user_id: str
    username: str
    email: str
    experience: int
    level: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProgressResponse(BaseModel):
    user_id: str
    experience: int
    level: int
    exp_for_next: int
    last_daily_exp: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


class ExpAdjustRequest(BaseModel):
    delta: int


class ProgressChangeResponse(BaseModel):
    user_id: str
    experience: int
    old_level: int
    new_level: int
    level_changed: bool

    model_config = ConfigDict(from_attributes=True)


class DailyBonusResponse(BaseModel):
    granted: bool
    progress: ProgressResponse


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------
class PostCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=120)
    content: str = Field(..., min_length=1)
    genre_ids: Optional[list[int]] = None


class PostUpdate(BaseModel):
    title: str = Field(..., min_length=1, max_length=120)
    content: str = Field(..., min_length=1)


class PostResponse(BaseModel):
    id: UUID
    user_id: str
    title: str
    content: str
    likes_count: int
    stars_count: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PostWithUserResponse(PostResponse):
    """A post enriched with author and viewer context.

    ``liked`` and ``starred`` are False for anonymous viewers; ``level`` is
    None when the author has no profile.
    """

    username: str
    level: Optional[int] = None
    liked: bool = False
    starred: bool = False
    genres: list["GenreResponse"] = Field(default_factory=list)


class PostPageResponse(BaseModel):
    items: list[PostWithUserResponse]
    total: int
    page: int
    size: int
    total_pages: int


class ReactionResponse(BaseModel):
    reacted: bool
    count: int


class ReactionStatusResponse(BaseModel):
    reacted: bool


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)
    parent_id: Optional[UUID] = None


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1)


class CommentResponse(BaseModel):
    id: UUID
    post_id: UUID
    user_id: str
    content: str
    parent_id: Optional[UUID] = None
    likes_count: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CommentPageResponse(BaseModel):
    items: list[CommentResponse]
    total: int
    page: int
    size: int
    total_pages: int


class CommentThreadResponse(BaseModel):
    comment: CommentResponse
    replies: list["CommentThreadResponse"] = []

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Genres
# ---------------------------------------------------------------------------
class GenreCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=255)


class GenreResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class GenreAssignRequest(BaseModel):
    genre_ids: list[int]


CommentThreadResponse.model_rebuild()
PostWithUserResponse.model_rebuild()
PostPageResponse.model_rebuild()
