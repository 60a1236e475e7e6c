"""Shared test fixtures for Agile Rates."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncGenerator

import aiosqlite
import pytest
import pytest_asyncio

from agile_rates.cache.rate_cache import RateCache
from agile_rates.cache.store import MemoryKeyValueStore
from agile_rates.config.manager import ConfigManager
from agile_rates.config.schema import AppConfig
from agile_rates.db.engine import init_db
from agile_rates.errors import RateFetchError
from agile_rates.regions import Region
from agile_rates.tariff.base import DailyRateSet, PriceSlot, RateRepository

DAY = date(2025, 6, 15)


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeRepository(RateRepository):
    """Scripted repository: maps day -> rate set or exception."""

    def __init__(self, responses: dict[date, DailyRateSet | Exception] | None = None) -> None:
        self.responses = responses or {}
        self.calls: list[tuple[Region, date]] = []

    async def fetch_day(self, region: Region, day: date) -> DailyRateSet:
        self.calls.append((region, day))
        response = self.responses.get(day, DailyRateSet(region=region, day=day))
        if isinstance(response, Exception):
            raise response
        return response


def make_slots(prices: Sequence[float], day: date = DAY) -> list[PriceSlot]:
    """Contiguous half-hour slots from 00:00 UTC on ``day``."""
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    return [
        PriceSlot(
            valid_from=start + timedelta(minutes=30 * i),
            valid_to=start + timedelta(minutes=30 * (i + 1)),
            unit_price=price,
        )
        for i, price in enumerate(prices)
    ]


def make_rate_set(
    prices: Sequence[float], day: date = DAY, region: Region = Region.LONDON
) -> DailyRateSet:
    return DailyRateSet(region=region, day=day, slots=tuple(make_slots(prices, day)))


def api_payload(slots: Sequence[PriceSlot]) -> dict:
    """Octopus-style response body, newest first as the API returns it."""
    results = [s.to_record() for s in reversed(list(slots))]
    return {"count": len(results), "next": None, "previous": None, "results": results}


def fetch_error(message: str = "boom") -> RateFetchError:
    return RateFetchError(message, attempts=3)


@pytest.fixture
def config() -> AppConfig:
    """Provide a default test configuration."""
    return AppConfig()


@pytest.fixture
def clock() -> FakeClock:
    """Clock at 05:00 UTC on the test day."""
    return FakeClock(datetime(DAY.year, DAY.month, DAY.day, 5, 0, tzinfo=timezone.utc))


@pytest.fixture
def store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def cache(store: MemoryKeyValueStore, clock: FakeClock) -> RateCache:
    return RateCache(store, clock=clock)


@pytest.fixture
def config_manager(tmp_path: Path) -> ConfigManager:
    """Provide a config manager with test paths."""
    defaults = tmp_path / "config.defaults.yaml"
    defaults.write_text("cache:\n  backend: memory\n")
    user = tmp_path / "config.yaml"
    mgr = ConfigManager(defaults_path=defaults, user_path=user)
    mgr.load()
    return mgr


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """Provide a fresh database for each test."""
    conn = await init_db(tmp_path / "test.db")
    yield conn
    await conn.close()
