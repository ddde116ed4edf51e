"""Per-reviewer review velocity tracking for review-bombing detection."""

from __future__ import annotations

from rentguard.cache.counter_cache import CounterCache
from rentguard.util.logger import get_logger

logger = get_logger("review_velocity")


class ReviewVelocityCounter:
    """
    Counts reviews per reviewer inside a fixed time window.

    The counter cache is advisory: an unreachable cache reads as zero and a
    failed write is logged and dropped, so review moderation never fails
    because of it.

    Args:
        cache: Counter store shared by all engine instances.
        window_seconds: Lifetime of a reviewer's counter, set on first review.
        threshold: Prior-review count at which a new review counts as bombing.
    """

    def __init__(self, cache: CounterCache, window_seconds: int = 3600, threshold: int = 5) -> None:
        self._cache = cache
        self.window_seconds = window_seconds
        self.threshold = threshold

    @staticmethod
    def key_for(reviewer_id: str) -> str:
        return f"review:velocity:{reviewer_id}"

    async def recent_count(self, reviewer_id: str) -> int:
        try:
            count = await self._cache.get(self.key_for(reviewer_id))
        except Exception as exc:
            logger.warning("[REVIEW VELOCITY] Counter read failed for %s: %s", reviewer_id, exc)
            return 0
        return count or 0

    async def record_review(self, reviewer_id: str) -> int:
        """Increment the reviewer's counter. Returns the new count (0 on failure)."""
        try:
            return await self._cache.increment(self.key_for(reviewer_id), self.window_seconds)
        except Exception as exc:
            logger.warning("[REVIEW VELOCITY] Counter write failed for %s: %s", reviewer_id, exc)
            return 0

    def is_bombing(self, count: int) -> bool:
        return count >= self.threshold
