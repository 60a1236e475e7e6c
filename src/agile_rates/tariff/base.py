"""Price slot model and the abstract rate repository."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any

from agile_rates.errors import FormatError
from agile_rates.regions import Region

SLOT_DURATION = timedelta(minutes=30)
SLOTS_PER_DAY = 48


def to_utc(dt: datetime) -> datetime:
    """Normalise a datetime to aware UTC. Naive values are assumed UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp as returned by the API ("...Z" suffix allowed)."""
    return to_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def format_timestamp(dt: datetime) -> str:
    return to_utc(dt).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class PriceSlot:
    """Single half-hour pricing period."""

    valid_from: datetime
    valid_to: datetime
    unit_price: float  # p/kWh incl. VAT
    unit_price_exc_vat: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "valid_from", to_utc(self.valid_from))
        object.__setattr__(self, "valid_to", to_utc(self.valid_to))
        if not self.valid_from < self.valid_to:
            raise ValueError(
                f"Slot must start before it ends: {self.valid_from} >= {self.valid_to}"
            )

    def contains(self, dt: datetime) -> bool:
        dt = to_utc(dt)
        return self.valid_from <= dt < self.valid_to

    @property
    def duration_hours(self) -> float:
        return (self.valid_to - self.valid_from).total_seconds() / 3600

    def to_record(self) -> dict[str, Any]:
        """Serialise using the upstream API field names."""
        record: dict[str, Any] = {
            "valid_from": format_timestamp(self.valid_from),
            "valid_to": format_timestamp(self.valid_to),
            "value_inc_vat": self.unit_price,
        }
        if self.unit_price_exc_vat is not None:
            record["value_exc_vat"] = self.unit_price_exc_vat
        return record

    @classmethod
    def from_record(cls, record: Any) -> PriceSlot:
        """Build a slot from an API/cache record, raising FormatError on bad shape."""
        if not isinstance(record, dict):
            raise FormatError(f"Rate record is not an object: {record!r}")
        try:
            price = record["value_inc_vat"]
            valid_from = parse_timestamp(record["valid_from"])
            valid_to = parse_timestamp(record["valid_to"])
        except KeyError as e:
            raise FormatError(f"Rate record missing field {e.args[0]!r}") from None
        except (TypeError, ValueError, AttributeError) as e:
            raise FormatError(f"Rate record has invalid timestamp: {e}") from e

        if isinstance(price, bool) or not isinstance(price, (int, float)):
            raise FormatError(f"Rate record has non-numeric price: {price!r}")
        exc_vat = record.get("value_exc_vat")
        if exc_vat is not None and (
            isinstance(exc_vat, bool) or not isinstance(exc_vat, (int, float))
        ):
            exc_vat = None

        try:
            return cls(
                valid_from=valid_from,
                valid_to=valid_to,
                unit_price=float(price),
                unit_price_exc_vat=float(exc_vat) if exc_vat is not None else None,
            )
        except ValueError as e:
            raise FormatError(str(e)) from e


@dataclass(frozen=True)
class DailyRateSet:
    """Chronologically ordered price slots for one region and UTC day."""

    region: Region
    day: date
    slots: tuple[PriceSlot, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.slots, key=lambda s: s.valid_from))
        object.__setattr__(self, "slots", ordered)

    def __len__(self) -> int:
        return len(self.slots)

    def __iter__(self) -> Iterator[PriceSlot]:
        return iter(self.slots)

    def __bool__(self) -> bool:
        return bool(self.slots)

    @property
    def is_complete(self) -> bool:
        return len(self.slots) == SLOTS_PER_DAY and not self.gaps()

    def gaps(self) -> list[tuple[datetime, datetime]]:
        """Return (end, next_start) pairs where consecutive slots are not contiguous."""
        return [
            (a.valid_to, b.valid_from)
            for a, b in zip(self.slots, self.slots[1:])
            if b.valid_from != a.valid_to
        ]

    def to_records(self) -> list[dict[str, Any]]:
        return [slot.to_record() for slot in self.slots]

    @classmethod
    def from_records(
        cls, region: Region, day: date, records: Iterable[Any]
    ) -> DailyRateSet:
        return cls(
            region=region,
            day=day,
            slots=tuple(PriceSlot.from_record(r) for r in records),
        )


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Inclusive UTC bounds of a calendar day: 00:00:00.000 to 23:59:59.999."""
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    end = start + timedelta(days=1) - timedelta(milliseconds=1)
    return start, end


class RateRepository(ABC):
    """Abstract source of a single day's price slots."""

    @abstractmethod
    async def fetch_day(self, region: Region, day: date) -> DailyRateSet:
        """Fetch all published slots for the UTC calendar day.

        May return an empty set when the day is not yet published.
        """
        ...

    async def close(self) -> None:
        return None
