"""Expiring cache of daily rate sets keyed by (region, UTC date)."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from agile_rates.cache.store import KeyValueStore
from agile_rates.config.schema import CacheConfig
from agile_rates.errors import FormatError, StoreFullError
from agile_rates.regions import Region
from agile_rates.tariff.base import DailyRateSet, to_utc

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_day(value: date | datetime) -> date:
    """Reduce a datetime to its UTC calendar date. Dates pass through."""
    if isinstance(value, datetime):
        return to_utc(value).date()
    return value


@dataclass
class CacheEntry:
    """A cached rate set with the time it was written."""

    rates: DailyRateSet
    created_at: datetime

    def age(self, now: datetime) -> timedelta:
        return now - self.created_at

    def to_json(self) -> str:
        return json.dumps(
            {
                "rates": self.rates.to_records(),
                "created_at": self.created_at.isoformat(),
                "region": self.rates.region.value,
                "date": self.rates.day.isoformat(),
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> CacheEntry:
        """Decode a stored entry, raising FormatError if it is corrupt."""
        try:
            data = json.loads(raw)
            region = Region(data["region"])
            day = date.fromisoformat(data["date"])
            created_at = to_utc(datetime.fromisoformat(data["created_at"]))
            records = data["rates"]
        except (ValueError, KeyError, TypeError) as e:
            raise FormatError(f"Corrupt cache entry: {e}") from e
        if not isinstance(records, list):
            raise FormatError("Corrupt cache entry: rates is not a list")
        return cls(
            rates=DailyRateSet.from_records(region, day, records),
            created_at=created_at,
        )


@dataclass
class CacheStats:
    entries: int
    size_bytes: int


class RateCache:
    """TTL cache of rate sets, also the offline fallback source.

    Entries are fresh for ``ttl_seconds`` after being written. Entries older
    than ``max_age_days`` are swept on every write regardless of TTL.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: CacheConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._config = config or CacheConfig()
        self._clock = clock or _utc_now
        self._ttl = timedelta(seconds=self._config.ttl_seconds)
        self._max_age = timedelta(days=self._config.max_age_days)

    @property
    def prefix(self) -> str:
        return f"{self._config.namespace}_"

    def cache_key(self, region: Region, day: date | datetime) -> str:
        return f"{self.prefix}{region.value}_{utc_day(day).isoformat()}"

    async def get(self, region: Region, day: date | datetime) -> DailyRateSet | None:
        """Return the cached set if it is within TTL, otherwise drop it."""
        key = self.cache_key(region, day)
        entry = await self._read(key)
        if entry is None:
            return None

        if entry.age(self._clock()) > self._ttl:
            logger.debug("Cache entry %s expired (age %s)", key, entry.age(self._clock()))
            await self._store.delete(key)
            return None
        return entry.rates

    async def put(self, region: Region, day: date | datetime, rates: DailyRateSet) -> None:
        """Store rates under (region, day), stamped now, then sweep old entries.

        A full store is swept and the write retried once. A second
        StoreFullError propagates to the caller.
        """
        key = self.cache_key(region, day)
        value = CacheEntry(rates=rates, created_at=self._clock()).to_json()
        try:
            await self._store.set(key, value)
        except StoreFullError:
            logger.warning("Cache store full writing %s, sweeping and retrying", key)
            await self.sweep()
            await self._store.set(key, value)
            return

        await self.sweep()

    async def invalidate_all(self) -> int:
        """Drop every entry in this cache's namespace."""
        keys = await self._store.keys(self.prefix)
        for key in keys:
            await self._store.delete(key)
        if keys:
            logger.info("Rate cache cleared (%d entries)", len(keys))
        return len(keys)

    async def find_any_recent(self, region: Region) -> DailyRateSet | None:
        """Offline fallback: today's entry, else yesterday's, ignoring TTL.

        Only entries still in the store are found. ``get`` drops expired
        entries, so a stale today entry survives only if no normal read
        happened since it expired (for example a forced refresh).
        """
        today = utc_day(self._clock())
        for day in (today, today - timedelta(days=1)):
            entry = await self._read(self.cache_key(region, day))
            if entry is not None and entry.rates:
                logger.info(
                    "Offline fallback hit for region %s on %s (age %s)",
                    region.value, day.isoformat(), entry.age(self._clock()),
                )
                return entry.rates
        return None

    async def sweep(self) -> int:
        """Remove entries older than max_age_days, and corrupt entries."""
        cutoff = self._clock() - self._max_age
        removed = 0
        for key in await self._store.keys(self.prefix):
            raw = await self._store.get(key)
            if raw is None:
                continue
            try:
                entry = CacheEntry.from_json(raw)
            except FormatError:
                await self._store.delete(key)
                removed += 1
                continue
            if entry.created_at < cutoff:
                await self._store.delete(key)
                removed += 1
        if removed:
            logger.info("Swept %d old cache entries", removed)
        return removed

    async def stats(self) -> CacheStats:
        keys = await self._store.keys(self.prefix)
        return CacheStats(
            entries=len(keys),
            size_bytes=await self._store.size_bytes(self.prefix),
        )

    async def _read(self, key: str) -> CacheEntry | None:
        raw = await self._store.get(key)
        if raw is None:
            return None
        try:
            return CacheEntry.from_json(raw)
        except FormatError as e:
            logger.warning("Dropping corrupt cache entry %s: %s", key, e)
            await self._store.delete(key)
            return None
