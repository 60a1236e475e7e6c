"""Tests for the TTL rate cache, sweeping and offline fallback."""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import DAY, FakeClock, make_rate_set

from agile_rates.cache.rate_cache import CacheEntry, RateCache
from agile_rates.cache.store import MemoryKeyValueStore
from agile_rates.config.schema import CacheConfig
from agile_rates.errors import StoreFullError
from agile_rates.orchestrator import RateContext
from agile_rates.regions import Region

YESTERDAY = DAY - timedelta(days=1)


class _FlakyStore(MemoryKeyValueStore):
    """Raises StoreFullError for the first ``failures`` writes."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def set(self, key: str, value: str) -> None:
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise StoreFullError("quota exceeded")
        await super().set(key, value)


class TestCacheKey:
    def test_key_format(self, cache: RateCache) -> None:
        assert cache.cache_key(Region.LONDON, DAY) == "octopus_rates_C_2025-06-15"

    def test_same_day_times_share_key(self, cache: RateCache) -> None:
        morning = datetime(2025, 6, 15, 0, 1, tzinfo=timezone.utc)
        night = datetime(2025, 6, 15, 23, 59, tzinfo=timezone.utc)
        assert cache.cache_key(Region.LONDON, morning) == cache.cache_key(Region.LONDON, night)

    def test_key_uses_utc_date(self, cache: RateCache) -> None:
        local = datetime(2025, 6, 16, 0, 30, tzinfo=timezone(timedelta(hours=1)))
        assert cache.cache_key(Region.LONDON, local).endswith("2025-06-15")


@pytest.mark.asyncio
class TestGetPut:
    async def test_round_trip(self, cache: RateCache) -> None:
        rates = make_rate_set([float(i) for i in range(48)])
        await cache.put(Region.LONDON, DAY, rates)
        assert await cache.get(Region.LONDON, DAY) == rates

    async def test_missing_returns_none(self, cache: RateCache) -> None:
        assert await cache.get(Region.LONDON, DAY) is None

    async def test_fresh_at_exact_ttl(self, cache: RateCache, clock: FakeClock) -> None:
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))
        clock.advance(hours=1)
        assert await cache.get(Region.LONDON, DAY) is not None

    async def test_expired_entry_removed(
        self, cache: RateCache, store: MemoryKeyValueStore, clock: FakeClock
    ) -> None:
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))
        clock.advance(hours=1, seconds=1)
        assert await cache.get(Region.LONDON, DAY) is None
        assert await store.keys("octopus_rates_") == []

    async def test_put_overwrites(self, cache: RateCache) -> None:
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))
        await cache.put(Region.LONDON, DAY, make_rate_set([2.0]))
        cached = await cache.get(Region.LONDON, DAY)
        assert [s.unit_price for s in cached] == [2.0]

    async def test_corrupt_entry_treated_as_absent(
        self, cache: RateCache, store: MemoryKeyValueStore
    ) -> None:
        await store.set("octopus_rates_C_2025-06-15", "{not json")
        assert await cache.get(Region.LONDON, DAY) is None
        assert await store.get("octopus_rates_C_2025-06-15") is None

    async def test_entry_json_shape(self, cache: RateCache, store: MemoryKeyValueStore) -> None:
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0, 2.0]))
        raw = json.loads(await store.get("octopus_rates_C_2025-06-15"))
        assert raw["region"] == "C"
        assert raw["date"] == "2025-06-15"
        assert raw["rates"][0]["value_inc_vat"] == 1.0
        assert "created_at" in raw


@pytest.mark.asyncio
class TestSweep:
    async def test_put_sweeps_entries_older_than_seven_days(
        self, cache: RateCache, store: MemoryKeyValueStore, clock: FakeClock
    ) -> None:
        old_day = DAY - timedelta(days=8)
        await cache.put(Region.LONDON, old_day, make_rate_set([1.0], day=old_day))
        clock.advance(days=7, seconds=1)
        await cache.put(Region.LONDON, DAY, make_rate_set([2.0]))
        assert await store.keys() == ["octopus_rates_C_2025-06-15"]

    async def test_sweep_keeps_expired_but_recent(
        self, cache: RateCache, store: MemoryKeyValueStore, clock: FakeClock
    ) -> None:
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))
        clock.advance(days=2)
        assert await cache.sweep() == 0
        assert len(await store.keys()) == 1

    async def test_sweep_removes_corrupt_and_ignores_other_namespaces(
        self, cache: RateCache, store: MemoryKeyValueStore
    ) -> None:
        await store.set("octopus_rates_C_2025-06-01", "garbage")
        await store.set("octopus_agile_region", "C")
        assert await cache.sweep() == 1
        assert await store.keys() == ["octopus_agile_region"]

    async def test_expired_then_swept(
        self, cache: RateCache, store: MemoryKeyValueStore, clock: FakeClock
    ) -> None:
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))
        clock.advance(hours=1, seconds=1)
        assert await cache.get(Region.LONDON, DAY) is None
        await cache.sweep()
        assert await store.keys() == []

    async def test_old_entry_swept_without_read(
        self, cache: RateCache, store: MemoryKeyValueStore, clock: FakeClock
    ) -> None:
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))
        clock.advance(days=8)
        assert await cache.sweep() == 1
        assert await store.keys() == []


@pytest.mark.asyncio
class TestStoreFull:
    async def test_sweeps_and_retries_once(self, clock: FakeClock) -> None:
        store = _FlakyStore(failures=1)
        cache = RateCache(store, clock=clock)
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))
        assert store.attempts == 2
        assert await cache.get(Region.LONDON, DAY) is not None

    async def test_second_failure_propagates(self, clock: FakeClock) -> None:
        store = _FlakyStore(failures=2)
        cache = RateCache(store, clock=clock)
        with pytest.raises(StoreFullError):
            await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))
        assert store.attempts == 2

    async def test_quota_store_frees_space_by_sweeping(self, clock: FakeClock) -> None:
        rates = make_rate_set([1.0] * 48)
        entry_size = len("octopus_rates_C_2025-06-15") + len(
            CacheEntry(rates=rates, created_at=clock()).to_json()
        )
        store = MemoryKeyValueStore(max_bytes=entry_size + 10)
        cache = RateCache(store, clock=clock)

        old_day = DAY - timedelta(days=8)
        await cache.put(Region.LONDON, old_day, make_rate_set([1.0] * 48, day=old_day))
        clock.advance(days=8)
        await cache.put(Region.LONDON, DAY, rates)
        assert await store.keys() == ["octopus_rates_C_2025-06-15"]


@pytest.mark.asyncio
class TestInvalidateAndFallback:
    async def test_invalidate_all(self, cache: RateCache, store: MemoryKeyValueStore) -> None:
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))
        await cache.put(Region.YORKSHIRE, DAY, make_rate_set([2.0], region=Region.YORKSHIRE))
        await store.set("octopus_agile_region", "C")
        assert await cache.invalidate_all() == 2
        assert await store.keys() == ["octopus_agile_region"]

    async def test_fallback_ignores_ttl(self, cache: RateCache, clock: FakeClock) -> None:
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))
        clock.advance(hours=5)
        fallback = await cache.find_any_recent(Region.LONDON)
        assert fallback is not None
        assert fallback.day == DAY

    async def test_fallback_misses_entry_dropped_by_get(
        self, cache: RateCache, clock: FakeClock
    ) -> None:
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))
        clock.advance(hours=5)
        assert await cache.get(Region.LONDON, DAY) is None
        assert await cache.find_any_recent(Region.LONDON) is None

    async def test_fallback_uses_yesterday(self, cache: RateCache, clock: FakeClock) -> None:
        clock.advance(days=-1)
        await cache.put(Region.LONDON, YESTERDAY, make_rate_set([3.0], day=YESTERDAY))
        clock.advance(days=1)
        fallback = await cache.find_any_recent(Region.LONDON)
        assert fallback is not None
        assert fallback.day == YESTERDAY

    async def test_fallback_prefers_today(self, cache: RateCache, clock: FakeClock) -> None:
        await cache.put(Region.LONDON, YESTERDAY, make_rate_set([3.0], day=YESTERDAY))
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))
        clock.advance(hours=3)
        fallback = await cache.find_any_recent(Region.LONDON)
        assert fallback.day == DAY

    async def test_fallback_is_region_specific(self, cache: RateCache) -> None:
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))
        assert await cache.find_any_recent(Region.YORKSHIRE) is None

    async def test_fallback_ignores_older_days(self, cache: RateCache) -> None:
        two_days_ago = DAY - timedelta(days=2)
        await cache.put(Region.LONDON, two_days_ago, make_rate_set([1.0], day=two_days_ago))
        assert await cache.find_any_recent(Region.LONDON) is None

    async def test_region_isolation_after_switch(self, cache: RateCache) -> None:
        context = RateContext(region=Region.LONDON, cache=cache)
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))

        assert await context.change_region("m") is True
        assert context.region == Region.YORKSHIRE
        await cache.put(
            Region.YORKSHIRE, DAY, make_rate_set([9.0], region=Region.YORKSHIRE)
        )

        assert await cache.get(Region.LONDON, DAY) is None
        yorkshire = await cache.get(Region.YORKSHIRE, DAY)
        assert [s.unit_price for s in yorkshire] == [9.0]

        assert await context.change_region("C") is True
        assert await cache.get(Region.YORKSHIRE, DAY) is None
        assert await cache.get(Region.LONDON, DAY) is None

    async def test_same_region_keeps_cache(self, cache: RateCache) -> None:
        context = RateContext(region=Region.LONDON, cache=cache)
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))
        assert await context.change_region("c") is False
        assert await cache.get(Region.LONDON, DAY) is not None

    async def test_stats(self, cache: RateCache) -> None:
        await cache.put(Region.LONDON, DAY, make_rate_set([1.0]))
        stats = await cache.stats()
        assert stats.entries == 1
        assert stats.size_bytes > 0


def test_custom_namespace(clock: FakeClock) -> None:
    cache = RateCache(MemoryKeyValueStore(), CacheConfig(namespace="test"), clock=clock)
    assert cache.cache_key(Region.LONDON, date(2025, 1, 2)) == "test_C_2025-01-02"
