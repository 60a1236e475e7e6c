"""Error taxonomy for rate acquisition and analysis."""

from __future__ import annotations


class AgileRatesError(Exception):
    """Base class for all agile_rates errors."""


class RateFetchError(AgileRatesError):
    """A day's rates could not be fetched from the upstream API."""

    retryable: bool = False

    def __init__(self, message: str, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class NetworkError(RateFetchError):
    """Transport-level failure (DNS, connection reset, timeout)."""

    retryable = True


class UpstreamError(RateFetchError):
    """Upstream answered with a non-success HTTP status."""

    def __init__(self, message: str, status_code: int, attempts: int = 1) -> None:
        super().__init__(message, attempts=attempts)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status_code >= 500 or self.status_code == 429


class FormatError(RateFetchError):
    """Response body did not have the expected shape. Never retried."""


class EmptyInputError(AgileRatesError):
    """Analysis was invoked without any price slots."""


class NoDataAvailable(AgileRatesError):
    """Cache, network and offline fallback were all exhausted."""


class InvalidRegionError(AgileRatesError, ValueError):
    """Region code is not one of the fixed tariff regions."""


class StoreError(AgileRatesError):
    """The cache backing store failed to read or write."""


class StoreFullError(StoreError):
    """The cache backing store refused a write for lack of space."""
