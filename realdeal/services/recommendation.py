"""Genre-aware feed ranking with session decay.

Personalization fades as the viewer scrolls: ``decay`` grows linearly from
0 to 1 over the first ``DECAY_HORIZON`` posts viewed.

  no genre overlap:  weight = 0.1 + 0.9 * decay
  overlap:           weight = (overlap / |preferred|) * (1 - decay) + decay

Early in a session matching posts dominate; by the horizon every post
weighs 1.0 and the feed falls back to recency, so unmatched posts are not
buried for good.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from realdeal.domain.entities import Post
from realdeal.domain.repositories import IGenreRepository

logger = logging.getLogger(__name__)

DECAY_HORIZON = 50.0
UNMATCHED_BASE = 0.1

# Weights are compared at this precision so float noise cannot split ties.
WEIGHT_PRECISION = 9


@dataclass
class ScoredPost:
    """Internal representation of a ranked candidate."""

    post: Post
    weight: float = 0.0
    genre_ids: set[int] = field(default_factory=set)


def decay_for(posts_viewed: int) -> float:
    return min(1.0, max(posts_viewed, 0) / DECAY_HORIZON)


def genre_weight(preferred: set[int], post_genres: set[int], decay: float) -> float:
    overlap = len(preferred & post_genres)
    if overlap == 0:
        return UNMATCHED_BASE + (1.0 - UNMATCHED_BASE) * decay
    match_ratio = overlap / len(preferred)
    return match_ratio * (1.0 - decay) + decay


class RecommendationRanker:
    """Reorders a page of candidates for one viewer.  Holds no state."""

    def __init__(self, genre_repository: IGenreRepository):
        self.genre_repository = genre_repository

    async def rank(
        self,
        candidates: Sequence[Post],
        viewer_id: Optional[str],
        posts_viewed: int,
    ) -> Sequence[Post]:
        if viewer_id is None or not candidates:
            return candidates

        preferred = await self.genre_repository.get_user_genre_ids(viewer_id)
        if not preferred:
            return candidates

        decay = decay_for(posts_viewed)
        scored: list[ScoredPost] = []
        for post in candidates:
            genre_ids = await self.genre_repository.get_post_genre_ids(post.id)
            scored.append(
                ScoredPost(
                    post=post,
                    weight=genre_weight(preferred, genre_ids, decay),
                    genre_ids=genre_ids,
                )
            )

        # Two stable passes: newest first, then by weight.
        scored.sort(key=lambda s: s.post.created_at, reverse=True)
        scored.sort(key=lambda s: round(s.weight, WEIGHT_PRECISION), reverse=True)

        logger.debug(
            "Ranked %d posts for %s (decay=%.2f, preferred=%s)",
            len(scored), viewer_id, decay, sorted(preferred),
        )
        return [s.post for s in scored]
