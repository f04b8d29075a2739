"""Experience ledger: per-user EXP, level and daily login bonus."""

import logging
from datetime import date, datetime, timezone, tzinfo
from typing import Callable, Optional

from realdeal.domain.entities import ProgressChange, UserProgress
from realdeal.domain.exceptions import NotFoundError
from realdeal.domain.levels import ThresholdTable
from realdeal.domain.repositories import IUserProfileRepository
from realdeal.domain.services import IExperienceService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExperienceService(IExperienceService):
    """Keeps ``level == table.level_for(experience)`` for every user.

    Experience never drops below 0: deductions larger than the balance
    (an unlike on a fresh account) stop at zero.  Calendar dates for the
    daily bonus are taken in ``tz``, not the server's local zone.
    """

    def __init__(
        self,
        user_repository: IUserProfileRepository,
        threshold_table: ThresholdTable,
        tz: tzinfo = timezone.utc,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.user_repository = user_repository
        self.threshold_table = threshold_table
        self.tz = tz
        self.clock = clock or _utcnow

    def today(self) -> date:
        return self.clock().astimezone(self.tz).date()

    async def add_exp(self, user_id: str, delta: int) -> ProgressChange:
        change = await self.user_repository.adjust_experience(
            user_id, delta, self.threshold_table.level_for
        )
        if change is None:
            raise NotFoundError(f"User not found: {user_id}")
        self._log_level_change(change)
        return change

    async def grant_daily_login_exp(self, user_id: str, bonus: int) -> bool:
        if await self.user_repository.get_by_id(user_id) is None:
            raise NotFoundError(f"User not found: {user_id}")
        today = self.today()
        change = await self.user_repository.claim_daily_bonus(
            user_id, today, bonus, self.threshold_table.level_for
        )
        if change is None:
            return False
        self._log_level_change(change)
        logger.info("Daily login bonus of %d EXP granted to %s for %s", bonus, user_id, today)
        return True

    async def get_progress(self, user_id: str) -> UserProgress:
        user = await self.user_repository.get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        return UserProgress(
            user_id=user.user_id,
            experience=user.experience,
            level=user.level,
            exp_for_next=self.threshold_table.exp_for_next(user.experience),
            last_daily_exp=user.last_daily_exp,
        )

    @staticmethod
    def _log_level_change(change: ProgressChange) -> None:
        if change.level_changed:
            # Hook point for level-up notifications.
            logger.info(
                "User %s moved from level %d to %d (exp=%d)",
                change.user_id, change.old_level, change.new_level, change.experience,
            )
