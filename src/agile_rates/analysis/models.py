"""Derived analysis views over a day's price slots."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from agile_rates.tariff.base import PriceSlot


class PriceCategory(str, Enum):
    """Day-relative price band."""

    CHEAP = "cheap"
    MEDIUM = "medium"
    EXPENSIVE = "expensive"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CategorizedSlot:
    """A price slot annotated for display. Disposable, recomputed per load."""

    slot: PriceSlot
    category: PriceCategory
    time_label: str

    @property
    def unit_price(self) -> float:
        return self.slot.unit_price


@dataclass(frozen=True)
class PriceStatistics:
    min_price: float
    max_price: float
    avg_price: float  # rounded to 2 dp
    price_range: float  # rounded to 2 dp


@dataclass(frozen=True)
class AnalysisResult:
    cheapest_slots: list[CategorizedSlot]
    most_expensive_slots: list[CategorizedSlot]
    statistics: PriceStatistics
    all_slots: list[CategorizedSlot]

    @property
    def slots(self) -> list[PriceSlot]:
        return [c.slot for c in self.all_slots]


@dataclass(frozen=True)
class CurrentSlotStatus:
    """Status of the slot covering "now", or UNKNOWN when none does."""

    status: PriceCategory
    slot: PriceSlot | None = None
    minutes_remaining: int | None = None
    rank: int | None = None  # 1 = cheapest of the day
    total_slots: int = 0
    time_label: str = ""
    message: str = ""

    @property
    def is_known(self) -> bool:
        return self.slot is not None

    @property
    def unit_price(self) -> float | None:
        return self.slot.unit_price if self.slot else None


@dataclass(frozen=True)
class DelayRecommendation:
    """Outcome of the delay search.

    ``found`` is False when no future slot is near the day's minimum; the
    caller decides how to phrase that.
    """

    found: bool
    current_price: float | None = None
    recommended_slot: PriceSlot | None = None
    delay_hours: float = 0.0  # rounded to 1 dp
    savings: float = 0.0  # floored at 0, rounded to 1 dp
    duration_hours: float = 0.0
    delay_until: datetime | None = None
    time_label: str = ""
    candidates: list[PriceSlot] = field(default_factory=list)

    @property
    def recommended_price(self) -> float | None:
        return self.recommended_slot.unit_price if self.recommended_slot else None
