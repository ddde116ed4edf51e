from unittest.mock import AsyncMock, MagicMock

from rentguard.cache.counter_cache import CounterCache, RedisCounterCache, TTLCounterCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


async def test_ttl_cache_counts_until_expiry():
    clock = FakeClock()
    cache = TTLCounterCache(clock=clock)

    assert await cache.get("k") is None
    assert await cache.increment("k", ttl=10) == 1
    assert await cache.increment("k", ttl=10) == 2
    assert await cache.get("k") == 2

    clock.now += 10
    assert await cache.get("k") is None
    assert await cache.increment("k", ttl=10) == 1


async def test_ttl_cache_increment_does_not_extend_window():
    clock = FakeClock()
    cache = TTLCounterCache(clock=clock)

    await cache.increment("k", ttl=10)
    clock.now += 5
    await cache.increment("k", ttl=10)
    clock.now += 5

    assert await cache.get("k") is None


async def test_ttl_cache_keys_are_independent():
    cache = TTLCounterCache(clock=FakeClock())
    await cache.increment("a", ttl=60)
    await cache.increment("a", ttl=60)
    await cache.increment("b", ttl=60)

    assert await cache.get("a") == 2
    assert await cache.get("b") == 1
    assert cache.clear() == 2
    assert await cache.get("a") is None


async def test_ttl_cache_sweeps_keys_that_are_never_read_again():
    clock = FakeClock()
    cache = TTLCounterCache(clock=clock, sweep_interval=60)
    for reviewer in range(100):
        await cache.increment(f"review:velocity:{reviewer}", ttl=10)
    assert len(cache) == 100

    # Expired but the sweep interval has not elapsed yet
    clock.now += 30
    await cache.increment("review:velocity:late", ttl=10)
    assert len(cache) == 101

    clock.now += 31
    await cache.increment("review:velocity:fresh", ttl=10)

    assert len(cache) == 1
    assert await cache.get("review:velocity:fresh") == 1


async def test_ttl_cache_purge_keeps_live_counters():
    clock = FakeClock()
    cache = TTLCounterCache(clock=clock)
    await cache.increment("short", ttl=5)
    await cache.increment("long", ttl=50)

    clock.now += 10

    assert cache.purge_expired() == 1
    assert len(cache) == 1
    assert await cache.get("long") == 1


def test_backends_satisfy_protocol():
    assert isinstance(TTLCounterCache(), CounterCache)
    assert isinstance(RedisCounterCache(MagicMock()), CounterCache)


async def test_redis_cache_sets_expiry_on_first_increment():
    client = MagicMock()
    client.incr = AsyncMock(return_value=1)
    client.expire = AsyncMock()
    cache = RedisCounterCache(client)

    assert await cache.increment("review:velocity:u1", 3600) == 1
    client.incr.assert_awaited_once_with("review:velocity:u1")
    client.expire.assert_awaited_once_with("review:velocity:u1", 3600)


async def test_redis_cache_does_not_reset_expiry():
    client = MagicMock()
    client.incr = AsyncMock(return_value=4)
    client.expire = AsyncMock()
    cache = RedisCounterCache(client)

    assert await cache.increment("k", 3600) == 4
    client.expire.assert_not_awaited()


async def test_redis_cache_get_parses_integers():
    client = MagicMock()
    client.get = AsyncMock(side_effect=["7", None])
    cache = RedisCounterCache(client)

    assert await cache.get("k") == 7
    assert await cache.get("missing") is None
