"""
Expiring integer counters.

Two interchangeable backends implement the :class:`CounterCache` contract:

- :class:`TTLCounterCache` keeps counters in process memory and expires them
  against a monotonic clock. Suitable for a single process and for tests.
- :class:`RedisCounterCache` stores counters in Redis so every worker sees
  the same count. The TTL is applied on the increment that creates the key,
  which makes the window fixed rather than sliding.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

import redis.asyncio as redis

from rentguard.util.logger import get_logger

logger = get_logger("counter_cache")


@runtime_checkable
class CounterCache(Protocol):
    async def get(self, key: str) -> Optional[int]:
        ...

    async def increment(self, key: str, ttl: int) -> int:
        ...


class TTLCounterCache:
    """
    In-process counter store with per-key expiry.

    Each entry is stored as ``(expires_at, count)``. The expiry is fixed when
    the key is first incremented; later increments do not extend it.
    Expired entries are swept from ``increment`` at most once per
    ``sweep_interval`` seconds, so keys that are never read again do not
    accumulate.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval: float = 60.0):
        """
        Initialize the counter store.

        Args:
            clock: Monotonic time source (injectable for tests)
            sweep_interval: Minimum seconds between expiry sweeps
        """
        self._entries: Dict[str, Tuple[float, int]] = {}
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[int]:
        """
        Return the live count for ``key``.

        Args:
            key: Counter key

        Returns:
            Current count, or None if the key is absent or expired
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        expires_at, count = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            logger.debug("[COUNTER CACHE] Expired key: %s", key)
            return None
        return count

    async def increment(self, key: str, ttl: int) -> int:
        """
        Increment ``key`` by one, creating it with a ``ttl``-second lifetime.

        Args:
            key: Counter key
            ttl: Lifetime in seconds applied when the key is created

        Returns:
            The count after incrementing
        """
        now = self._clock()
        if now >= self._next_sweep:
            self.purge_expired()
            self._next_sweep = now + self._sweep_interval

        current = await self.get(key)
        if current is None:
            self._entries[key] = (self._clock() + ttl, 1)
            return 1

        expires_at, _ = self._entries[key]
        self._entries[key] = (expires_at, current + 1)
        return current + 1

    def purge_expired(self) -> int:
        """Drop every expired counter. Returns the number of entries removed."""
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("[COUNTER CACHE] Purged %d expired key(s)", len(expired))
        return len(expired)

    def clear(self) -> int:
        """Drop every counter. Returns the number of entries removed."""
        count = len(self._entries)
        self._entries.clear()
        return count


class RedisCounterCache:
    """Counter store backed by Redis ``INCR``/``EXPIRE``."""

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCounterCache":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Optional[int]:
        value = await self._client.get(key)
        if value is None:
            return None
        return int(value)

    async def increment(self, key: str, ttl: int) -> int:
        count = int(await self._client.incr(key))
        if count == 1:
            await self._client.expire(key, ttl)
        return count

    async def close(self) -> None:
        await self._client.aclose()
