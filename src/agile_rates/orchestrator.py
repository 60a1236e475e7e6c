"""Acquisition policy: cache, then network, then stale offline data.

Load sequence for the context's region and today's UTC date:

  1. fresh cache entry (unless forcing a refresh)
  2. network fetch for today; if nothing is published yet, yesterday
  3. any cached entry for today or yesterday, ignoring TTL
  4. LoadFailure(NoDataAvailable)

Concurrent loads for the same (region, day) share one in-flight task.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from agile_rates.cache.rate_cache import RateCache, utc_day
from agile_rates.errors import NoDataAvailable, RateFetchError, StoreError
from agile_rates.logging.context import load_context
from agile_rates.regions import Region, parse_region
from agile_rates.tariff.base import DailyRateSet, RateRepository

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = (
    "No pricing data available. Please check your internet connection and try again."
)


@dataclass
class RateContext:
    """Mutable load preferences shared by the dashboard and orchestrator."""

    region: Region
    cache: RateCache
    online: bool = True

    async def change_region(self, code: str | Region) -> bool:
        """Switch region, dropping cached data for the old one.

        Returns True if the region actually changed.
        """
        region = parse_region(code)
        if region == self.region:
            return False
        self.region = region
        try:
            await self.cache.invalidate_all()
        except StoreError as e:
            # Keys are per region, so leftovers are never served for the new one.
            logger.error("Failed to clear cache on region change: %s", e)
        logger.info("Region changed to %s (%s)", region.value, region.display_name)
        return True


@dataclass(frozen=True)
class LoadSuccess:
    rates: DailyRateSet
    is_stale: bool
    source: str  # cache, network, network_previous_day, offline_cache

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class LoadFailure:
    error: NoDataAvailable

    @property
    def ok(self) -> bool:
        return False

    @property
    def reason(self) -> str:
        return str(self.error)


LoadResult = LoadSuccess | LoadFailure


class AcquisitionOrchestrator:
    """Composes repository and cache into a single load policy."""

    def __init__(
        self,
        repository: RateRepository,
        context: RateContext,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._context = context
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._in_flight: dict[tuple[Region, date], asyncio.Task[LoadResult]] = {}

    @property
    def context(self) -> RateContext:
        return self._context

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def load(self, force_refresh: bool = False) -> LoadResult:
        """Run (or join) the load for the current region and today.

        Joined callers get the in-flight task's result; the task itself is
        shielded so cancelling a caller never aborts a fetch mid-retry.
        """
        key = (self._context.region, utc_day(self._clock()))
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._acquire(key[0], key[1], force_refresh))
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            logger.debug("Joining in-flight load for %s %s", key[0].value, key[1])
        return await asyncio.shield(task)

    async def load_or_raise(self, force_refresh: bool = False) -> LoadSuccess:
        result = await self.load(force_refresh)
        if isinstance(result, LoadFailure):
            raise result.error
        return result

    def _forget(self, key: tuple[Region, date], task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _acquire(self, region: Region, today: date, force_refresh: bool) -> LoadResult:
        with load_context(region=region.value, day=today.isoformat()):
            if not force_refresh:
                cached = await self._read_cache(region, today)
                if cached:
                    logger.info("Using cached rates (%d slots)", len(cached))
                    return LoadSuccess(rates=cached, is_stale=False, source="cache")

            if self._context.online:
                result = await self._fetch_from_network(region, today)
                if result is not None:
                    return result
            else:
                logger.info("Offline, skipping network fetch")

            fallback = await self._read_fallback(region)
            if fallback:
                logger.info("Using offline fallback (%s, %d slots)", fallback.day, len(fallback))
                return LoadSuccess(rates=fallback, is_stale=True, source="offline_cache")

            logger.error("No pricing data available for region %s", region.value)
            return LoadFailure(error=NoDataAvailable(NO_DATA_MESSAGE))

    async def _fetch_from_network(self, region: Region, today: date) -> LoadSuccess | None:
        """Today, then yesterday if today is unpublished. None on failure or no data."""
        try:
            rates = await self._repository.fetch_day(region, today)
            if rates:
                await self._store(region, today, rates)
                return LoadSuccess(rates=rates, is_stale=False, source="network")

            yesterday = today - timedelta(days=1)
            logger.info("No data for today, trying %s", yesterday.isoformat())
            rates = await self._repository.fetch_day(region, yesterday)
            if rates:
                await self._store(region, yesterday, rates)
                logger.info("Using previous day's rates as fallback")
                return LoadSuccess(rates=rates, is_stale=True, source="network_previous_day")

            logger.warning("API returned no data for today or yesterday")
        except RateFetchError as e:
            logger.error("Rate fetch failed after %d attempt(s): %s", e.attempts, e)
        return None

    async def _read_cache(self, region: Region, day: date) -> DailyRateSet | None:
        try:
            return await self._context.cache.get(region, day)
        except StoreError as e:
            logger.warning("Cache read failed, treating as miss: %s", e)
            return None

    async def _read_fallback(self, region: Region) -> DailyRateSet | None:
        try:
            return await self._context.cache.find_any_recent(region)
        except StoreError as e:
            logger.warning("Offline cache lookup failed: %s", e)
            return None

    async def _store(self, region: Region, day: date, rates: DailyRateSet) -> None:
        try:
            await self._context.cache.put(region, day, rates)
        except StoreError as e:
            # Fetched data is still valid for this load.
            logger.error("Failed to cache rates: %s", e)
