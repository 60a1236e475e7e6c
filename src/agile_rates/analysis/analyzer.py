"""Pure analysis of a day's price slots.

No I/O and no state: every function takes the slots it needs. Empty input
is a caller error and raises EmptyInputError, except the current-slot
lookup which reports UNKNOWN.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone, tzinfo

from agile_rates.analysis.formatting import format_time_slot, round1
from agile_rates.analysis.models import (
    AnalysisResult,
    CategorizedSlot,
    CurrentSlotStatus,
    DelayRecommendation,
    PriceCategory,
    PriceStatistics,
)
from agile_rates.errors import EmptyInputError
from agile_rates.tariff.base import PriceSlot, to_utc

CHEAP_FRACTION = 0.3
EXPENSIVE_FRACTION = 0.7
CHEAP_MARGIN_PENCE = 5.0
RANKING_COUNT = 5


def _require_slots(slots: Sequence[PriceSlot]) -> None:
    if not slots:
        raise EmptyInputError("No rates data provided")


def categorize_price(
    price: float,
    min_price: float,
    max_price: float,
    cheap_fraction: float = CHEAP_FRACTION,
    expensive_fraction: float = EXPENSIVE_FRACTION,
) -> PriceCategory:
    """Band a price relative to the day's own min/max.

    A flat day (max == min) is MEDIUM throughout.
    """
    price_range = max_price - min_price
    if price_range == 0:
        return PriceCategory.MEDIUM
    low_threshold = min_price + price_range * cheap_fraction
    high_threshold = min_price + price_range * expensive_fraction

    if price <= low_threshold:
        return PriceCategory.CHEAP
    if price >= high_threshold:
        return PriceCategory.EXPENSIVE
    return PriceCategory.MEDIUM


def compute_statistics(slots: Sequence[PriceSlot]) -> PriceStatistics:
    _require_slots(slots)
    prices = [s.unit_price for s in slots]
    min_price = min(prices)
    max_price = max(prices)
    avg_price = sum(prices) / len(prices)
    return PriceStatistics(
        min_price=min_price,
        max_price=max_price,
        avg_price=round(avg_price, 2),
        price_range=round(max_price - min_price, 2),
    )


def rank_slots(
    slots: Sequence[PriceSlot], count: int = RANKING_COUNT
) -> tuple[list[PriceSlot], list[PriceSlot]]:
    """Return (cheapest, most_expensive), each at most ``count`` long.

    Both come from a stable sort on price, so equal prices keep
    chronological order. Most-expensive is in descending price order.
    """
    _require_slots(slots)
    cheapest = sorted(slots, key=lambda s: s.unit_price)[:count]
    most_expensive = sorted(slots, key=lambda s: s.unit_price, reverse=True)[:count]
    return cheapest, most_expensive


def analyze_rates(
    slots: Sequence[PriceSlot],
    tz: tzinfo = timezone.utc,
    count: int = RANKING_COUNT,
    cheap_fraction: float = CHEAP_FRACTION,
    expensive_fraction: float = EXPENSIVE_FRACTION,
) -> AnalysisResult:
    """Rank, categorise and summarise a day's slots."""
    stats = compute_statistics(slots)

    def annotate(slot: PriceSlot) -> CategorizedSlot:
        return CategorizedSlot(
            slot=slot,
            category=categorize_price(
                slot.unit_price,
                stats.min_price,
                stats.max_price,
                cheap_fraction,
                expensive_fraction,
            ),
            time_label=format_time_slot(slot, tz),
        )

    cheapest, most_expensive = rank_slots(slots, count)
    return AnalysisResult(
        cheapest_slots=[annotate(s) for s in cheapest],
        most_expensive_slots=[annotate(s) for s in most_expensive],
        statistics=stats,
        all_slots=[annotate(s) for s in slots],
    )


def find_current_slot(slots: Sequence[PriceSlot], now: datetime) -> PriceSlot | None:
    now = to_utc(now)
    for slot in slots:
        if slot.valid_from <= now < slot.valid_to:
            return slot
    return None


def get_current_slot_status(
    slots: Sequence[PriceSlot],
    now: datetime,
    tz: tzinfo = timezone.utc,
    cheap_fraction: float = CHEAP_FRACTION,
    expensive_fraction: float = EXPENSIVE_FRACTION,
) -> CurrentSlotStatus:
    """Status of the slot covering ``now``. Never raises for missing data."""
    if not slots:
        return CurrentSlotStatus(status=PriceCategory.UNKNOWN, message="No data available")

    current = find_current_slot(slots, now)
    if current is None:
        return CurrentSlotStatus(
            status=PriceCategory.UNKNOWN,
            total_slots=len(slots),
            message="Current time slot not found",
        )

    stats = compute_statistics(slots)
    remaining = max(0.0, (current.valid_to - to_utc(now)).total_seconds())
    rank = 1 + sum(1 for s in slots if s.unit_price < current.unit_price)
    return CurrentSlotStatus(
        status=categorize_price(
            current.unit_price,
            stats.min_price,
            stats.max_price,
            cheap_fraction,
            expensive_fraction,
        ),
        slot=current,
        minutes_remaining=int(remaining // 60),
        rank=rank,
        total_slots=len(slots),
        time_label=format_time_slot(current, tz),
    )


def calculate_delay_recommendation(
    slots: Sequence[PriceSlot],
    now: datetime,
    duration_hours: float = 1.0,
    margin: float = CHEAP_MARGIN_PENCE,
    tz: tzinfo = timezone.utc,
) -> DelayRecommendation:
    """Find the earliest future slot priced within ``margin`` of the day's minimum.

    Savings compare that slot with the current one over ``duration_hours``
    and are never reported below zero.
    """
    stats = compute_statistics(slots)
    now = to_utc(now)
    current = find_current_slot(slots, now)
    current_price = current.unit_price if current else None

    threshold = stats.min_price + margin
    candidates = sorted(
        (s for s in slots if s.valid_from > now and s.unit_price <= threshold),
        key=lambda s: s.valid_from,
    )
    if not candidates:
        return DelayRecommendation(
            found=False,
            current_price=current_price,
            duration_hours=duration_hours,
        )

    best = candidates[0]
    delay_hours = (best.valid_from - now).total_seconds() / 3600
    savings = 0.0
    if current_price is not None:
        savings = (current_price - best.unit_price) * duration_hours
    return DelayRecommendation(
        found=True,
        current_price=current_price,
        recommended_slot=best,
        delay_hours=round1(delay_hours),
        savings=round1(max(0.0, savings)),
        duration_hours=duration_hours,
        delay_until=best.valid_from,
        time_label=format_time_slot(best, tz),
        candidates=candidates,
    )
