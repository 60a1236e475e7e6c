"""Octopus Energy Agile tariff repository.

API docs: https://developer.octopus.energy/rest/reference
Unit rates are public, no auth required. Prices are p/kWh.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import date, datetime

import httpx

from agile_rates.config.schema import ApiConfig
from agile_rates.errors import FormatError, NetworkError, RateFetchError, UpstreamError
from agile_rates.regions import Region
from agile_rates.tariff.base import (
    SLOTS_PER_DAY,
    DailyRateSet,
    RateRepository,
    day_bounds,
)

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


def _iso_millis(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


class OctopusRateRepository(RateRepository):
    """Fetches a day of Agile unit rates with bounded linear-backoff retry."""

    def __init__(
        self,
        config: ApiConfig | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        self._config = config or ApiConfig()
        self._client = client or httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=self._config.timeout_seconds,
        )
        self._sleep = sleep or asyncio.sleep

    def tariff_code(self, region: Region) -> str:
        return f"E-1R-{self._config.product_code}-{region.value}"

    def build_request(self, region: Region, day: date) -> tuple[str, dict[str, str]]:
        """Return (path, query params) for the day's standard unit rates."""
        product = self._config.product_code
        start, end = day_bounds(day)
        path = (
            f"/products/{product}/electricity-tariffs/"
            f"{self.tariff_code(region)}/standard-unit-rates/"
        )
        params = {
            "period_from": _iso_millis(start),
            "period_to": _iso_millis(end),
            "page_size": str(self._config.page_size),
        }
        return path, params

    async def fetch_day(self, region: Region, day: date) -> DailyRateSet:
        path, params = self.build_request(region, day)
        logger.info(
            "Fetching Agile rates for region %s on %s", region.value, day.isoformat()
        )
        records = await self._request_with_retry(path, params)
        rates = DailyRateSet.from_records(region, day, records)

        if not rates:
            logger.warning(
                "No rates published yet for region %s on %s", region.value, day.isoformat()
            )
        elif len(rates) < SLOTS_PER_DAY:
            logger.warning(
                "Partial day: %d of %d slots for region %s on %s",
                len(rates), SLOTS_PER_DAY, region.value, day.isoformat(),
            )
        else:
            logger.info("Agile rates fetched: %d slots", len(rates))

        gaps = rates.gaps()
        if gaps:
            logger.warning(
                "Agile price gaps: %d gaps (first: %s to %s)",
                len(gaps), gaps[0][0].isoformat(), gaps[0][1].isoformat(),
            )
        return rates

    async def _request_with_retry(
        self, path: str, params: dict[str, str]
    ) -> list[dict]:
        max_attempts = self._config.max_attempts
        last_error: RateFetchError | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                return await self._request_once(path, params)
            except RateFetchError as e:
                last_error = e
                logger.warning(
                    "Rate request attempt %d/%d failed: %s", attempt, max_attempts, e
                )
                if not e.retryable:
                    e.attempts = attempt
                    raise
                if attempt < max_attempts:
                    await self._sleep(self._config.retry_base_delay_seconds * attempt)

        assert last_error is not None
        raise _exhausted(last_error, max_attempts) from last_error

    async def _request_once(self, path: str, params: dict[str, str]) -> list[dict]:
        try:
            resp = await self._client.get(path, params=params)
        except httpx.TransportError as e:
            raise NetworkError(f"{type(e).__name__}: {e}") from e

        if resp.status_code >= 400:
            body = resp.text[:200]
            raise UpstreamError(
                f"HTTP {resp.status_code}: {resp.reason_phrase} - {body}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise FormatError("Invalid API response format: body is not JSON") from e

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise FormatError("Invalid API response format: missing results list")

        logger.debug(
            "Rate response: count=%s results=%d", data.get("count", "unknown"), len(results)
        )
        return results

    async def is_healthy(self) -> bool:
        try:
            resp = await self._client.get("/products/", params={"page_size": "1"})
            return resp.status_code == 200
        except httpx.HTTPError:
            return False

    async def close(self) -> None:
        await self._client.aclose()


def _exhausted(error: RateFetchError, attempts: int) -> RateFetchError:
    """Copy of the last failure annotated with the attempt count."""
    message = f"Failed to fetch rates after {attempts} attempts: {error}"
    if isinstance(error, UpstreamError):
        return UpstreamError(message, status_code=error.status_code, attempts=attempts)
    return type(error)(message, attempts=attempts)
