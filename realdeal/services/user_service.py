"""User profile registration and lookup."""

import logging
from dataclasses import dataclass
from typing import Optional

from realdeal.domain.entities import UserProfile
from realdeal.domain.exceptions import ConflictError, InvalidInputError, NotFoundError
from realdeal.domain.repositories import IUserProfileRepository

logger = logging.getLogger(__name__)

UNKNOWN_USERNAME = "Unknown User"


@dataclass(frozen=True)
class Author:
    username: str
    level: Optional[int] = None


class UserService:
    """Profiles are keyed by the external user id; credentials live elsewhere."""

    def __init__(self, user_repository: IUserProfileRepository):
        self.user_repository = user_repository

    async def register_user(self, user_id: str, username: str, email: str) -> UserProfile:
        user_id = (user_id or "").strip()
        username = (username or "").strip()
        email = (email or "").strip().lower()
        if not user_id or not username or not email:
            raise InvalidInputError("userId, username and email are required")

        if await self.user_repository.get_by_id(user_id) is not None:
            raise ConflictError(f"User already exists: {user_id}")
        if await self.user_repository.exists_by_username(username):
            raise ConflictError("Username already taken")
        if await self.user_repository.exists_by_email(email):
            raise ConflictError("Email already registered")

        profile = await self.user_repository.create(
            UserProfile(user_id=user_id, username=username, email=email)
        )
        logger.info("Registered user %s (%s)", user_id, username)
        return profile

    async def get_profile(self, user_id: str) -> UserProfile:
        profile = await self.user_repository.get_by_id(user_id)
        if profile is None:
            raise NotFoundError(f"User not found: {user_id}")
        return profile

    async def get_usernames(self, user_ids: list[str]) -> dict[str, str]:
        unique = list(dict.fromkeys(user_ids))
        found = await self.user_repository.get_usernames(unique) if unique else {}
        return {uid: found.get(uid, UNKNOWN_USERNAME) for uid in unique}

    async def get_authors(self, user_ids: list[str]) -> dict[str, Author]:
        """Username and level per author; users without a profile get the default name."""
        unique = list(dict.fromkeys(user_ids))
        profiles = await self.user_repository.get_profiles(unique) if unique else {}
        authors = {}
        for uid in unique:
            profile = profiles.get(uid)
            if profile is None:
                authors[uid] = Author(username=UNKNOWN_USERNAME)
            else:
                authors[uid] = Author(username=profile.username, level=profile.level)
        return authors
