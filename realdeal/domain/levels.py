"""EXP → level mapping."""

from bisect import bisect_right
from typing import Sequence

from realdeal.domain.exceptions import InvalidInputError

# EXP needed to reach each level (index 0 = Lv1, index 28 = Lv29).
DEFAULT_THRESHOLDS: tuple[int, ...] = (
    0, 50, 120, 210, 320, 450, 600, 760, 930, 1110,
    1300, 1500, 1710, 1930, 2160, 2400, 2650, 2910, 3180, 3460,
    3750, 4050, 4360, 4680, 5010, 5350, 5700, 6060, 6430,
)

MAX_LEVEL = 30


class ThresholdTable:
    """Immutable, ordered EXP-to-level lookup.

    ``level_for(exp)`` is the number of thresholds that ``exp`` has reached,
    never below 1 and never above ``max_level``.
    """

    __slots__ = ("_thresholds", "_max_level")

    def __init__(self, thresholds: Sequence[int] = DEFAULT_THRESHOLDS, max_level: int = MAX_LEVEL):
        values = tuple(int(t) for t in thresholds)
        if not values:
            raise InvalidInputError("Threshold table must not be empty")
        if any(t < 0 for t in values):
            raise InvalidInputError("Thresholds must be non-negative")
        if any(b < a for a, b in zip(values, values[1:])):
            raise InvalidInputError("Thresholds must be in ascending order")
        if max_level < 1:
            raise InvalidInputError("max_level must be at least 1")
        self._thresholds = values
        self._max_level = max_level

    @property
    def thresholds(self) -> tuple[int, ...]:
        return self._thresholds

    @property
    def max_level(self) -> int:
        return self._max_level

    def level_for(self, exp: int) -> int:
        reached = bisect_right(self._thresholds, exp)
        return min(max(reached, 1), self._max_level)

    def exp_for_next(self, exp: int) -> int:
        """EXP needed to reach the level after ``level_for(exp)``.

        At the top of the table this is the last threshold.
        """
        level = self.level_for(exp)
        if level >= len(self._thresholds) or level >= self._max_level:
            return self._thresholds[-1]
        return self._thresholds[level]

    def __repr__(self) -> str:
        return f"ThresholdTable(levels={len(self._thresholds)}, max_level={self._max_level})"
