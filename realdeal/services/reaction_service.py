"""Like / star toggling with consistent counters and EXP propagation."""

import logging
from typing import Optional
from uuid import UUID

from realdeal.domain.entities import EntityKind, ReactionKey, ReactionKind
from realdeal.domain.exceptions import ConflictError, InvalidInputError, NotFoundError
from realdeal.domain.repositories import ICommentRepository, IPostRepository, IReactionRepository
from realdeal.domain.services import IExperienceService, IReactionService
from realdeal.services.cache import CacheCoordinator, CacheName, Mutation

logger = logging.getLogger(__name__)

# EXP the entity owner gains (or loses on undo) per reaction from someone else.
DEFAULT_EXP_REWARDS: dict[tuple[EntityKind, ReactionKind], int] = {
    (EntityKind.POST, ReactionKind.LIKE): 2,
    (EntityKind.POST, ReactionKind.STAR): 2,
    (EntityKind.COMMENT, ReactionKind.LIKE): 2,
}

# (mutation to invalidate, cache holding the per-user reaction status)
_REACTION_CACHES: dict[tuple[EntityKind, ReactionKind], tuple[Mutation, CacheName]] = {
    (EntityKind.POST, ReactionKind.LIKE): (Mutation.POST_LIKED, CacheName.POST_LIKES),
    (EntityKind.POST, ReactionKind.STAR): (Mutation.POST_STARRED, CacheName.POST_STARS),
    (EntityKind.COMMENT, ReactionKind.LIKE): (Mutation.COMMENT_LIKED, CacheName.COMMENT_LIKES),
}


class ReactionService(IReactionService):
    """Flips reaction records and keeps the entity counters in step.

    The record change and the counter change are one store transaction.
    Two concurrent toggles by the same user can race between the existence
    check and the write; the loser sees ``ConflictError`` from the store,
    re-reads, and retries once.  The last completed toggle wins.
    """

    def __init__(
        self,
        reaction_repository: IReactionRepository,
        post_repository: IPostRepository,
        comment_repository: ICommentRepository,
        experience_service: IExperienceService,
        cache: CacheCoordinator,
        exp_rewards: Optional[dict[tuple[EntityKind, ReactionKind], int]] = None,
    ):
        self.reaction_repository = reaction_repository
        self.post_repository = post_repository
        self.comment_repository = comment_repository
        self.experience_service = experience_service
        self.cache = cache
        self.exp_rewards = exp_rewards if exp_rewards is not None else DEFAULT_EXP_REWARDS

    async def toggle(
        self,
        entity_id: UUID,
        entity_kind: EntityKind,
        reaction_kind: ReactionKind,
        acting_user_id: str,
    ) -> bool:
        mutation, _ = self._caches_for(entity_kind, reaction_kind)
        owner_id = await self._owner_of(entity_id, entity_kind)
        key = ReactionKey(entity_id, acting_user_id, entity_kind, reaction_kind)

        try:
            reacted = await self._flip(key)
        except ConflictError:
            logger.info("Concurrent toggle on %s; re-reading and retrying once", key)
            reacted = await self._flip(key)

        logger.info(
            "%s %s %s %s by %s",
            entity_kind.value, entity_id, reaction_kind.value,
            "added" if reacted else "removed", acting_user_id,
        )
        await self._invalidate(mutation, entity_kind, entity_id, acting_user_id)
        await self._propagate_exp(entity_kind, reaction_kind, owner_id, acting_user_id, reacted)
        return reacted

    async def toggle_reaction(
        self,
        entity_id: UUID,
        entity_kind: EntityKind,
        reaction_kind: ReactionKind,
        user_id: str,
    ) -> tuple[bool, int]:
        reacted = await self.toggle(entity_id, entity_kind, reaction_kind, user_id)
        count = await self.reaction_repository.get_counter(entity_kind, entity_id, reaction_kind)
        if count is None:
            raise NotFoundError(f"{entity_kind.value.capitalize()} not found: {entity_id}")
        return reacted, count

    async def has_reacted(
        self,
        entity_id: UUID,
        entity_kind: EntityKind,
        reaction_kind: ReactionKind,
        user_id: str,
    ) -> bool:
        _, status_cache = self._caches_for(entity_kind, reaction_kind)
        key = ReactionKey(entity_id, user_id, entity_kind, reaction_kind)
        return await self.cache.get_or_load(
            status_cache,
            f"{entity_id}:{user_id}",
            lambda: self.reaction_repository.exists(key),
        )

    async def _flip(self, key: ReactionKey) -> bool:
        if await self.reaction_repository.exists(key):
            await self.reaction_repository.delete_and_decrement(key)
            return False
        await self.reaction_repository.insert_and_increment(key)
        return True

    async def _owner_of(self, entity_id: UUID, entity_kind: EntityKind) -> str:
        if entity_kind is EntityKind.POST:
            entity = await self.post_repository.get_by_id(entity_id)
        else:
            entity = await self.comment_repository.get_by_id(entity_id)
        if entity is None:
            raise NotFoundError(f"{entity_kind.value.capitalize()} not found: {entity_id}")
        return entity.user_id

    async def _invalidate(
        self, mutation: Mutation, entity_kind: EntityKind, entity_id: UUID, user_id: str
    ) -> None:
        if entity_kind is EntityKind.POST:
            await self.cache.invalidate(mutation, post_id=entity_id, user_id=user_id)
        else:
            await self.cache.invalidate(mutation, comment_id=entity_id, user_id=user_id)

    async def _propagate_exp(
        self,
        entity_kind: EntityKind,
        reaction_kind: ReactionKind,
        owner_id: str,
        acting_user_id: str,
        reacted: bool,
    ) -> None:
        if owner_id == acting_user_id:
            return
        reward = self.exp_rewards.get((entity_kind, reaction_kind), 0)
        if reward == 0:
            return
        try:
            await self.experience_service.add_exp(owner_id, reward if reacted else -reward)
        except NotFoundError:
            # The reaction itself is committed; an owner without a profile only loses the EXP.
            logger.warning("No profile for owner %s; EXP for reaction not applied", owner_id)

    @staticmethod
    def _caches_for(
        entity_kind: EntityKind, reaction_kind: ReactionKind
    ) -> tuple[Mutation, CacheName]:
        caches = _REACTION_CACHES.get((entity_kind, reaction_kind))
        if caches is None:
            raise InvalidInputError(
                f"{reaction_kind.value} is not supported on a {entity_kind.value}"
            )
        return caches
