"""Display helpers for analysis results.

All rounding here is presentation only; analysis compares raw prices.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo

from agile_rates.analysis.models import (
    CurrentSlotStatus,
    DelayRecommendation,
    PriceCategory,
)
from agile_rates.tariff.base import PriceSlot

STATUS_DISPLAY: dict[PriceCategory, dict[str, str]] = {
    PriceCategory.CHEAP: {"icon": "🌱", "text": "GREAT TIME", "color": "green"},
    PriceCategory.MEDIUM: {"icon": "⚡", "text": "OK TIME", "color": "amber"},
    PriceCategory.EXPENSIVE: {"icon": "🔥", "text": "AVOID NOW", "color": "red"},
    PriceCategory.UNKNOWN: {"icon": "❔", "text": "NO DATA", "color": "grey"},
}


def round1(value: float) -> float:
    return round(value, 1)


def format_clock(dt: datetime, tz: tzinfo = timezone.utc) -> str:
    return dt.astimezone(tz).strftime("%H:%M")


def format_time_slot(slot: PriceSlot, tz: tzinfo = timezone.utc) -> str:
    """24-hour "HH:MM-HH:MM" label in the display timezone."""
    return f"{format_clock(slot.valid_from, tz)}-{format_clock(slot.valid_to, tz)}"


def format_price(price: float | None) -> str:
    if price is None:
        return "--.-p"
    return f"{price:.1f}p"


def describe_status(status: CurrentSlotStatus) -> str:
    display = STATUS_DISPLAY[status.status]
    if not status.is_known:
        return f"{display['icon']} {display['text']}: {status.message}"
    return (
        f"{display['icon']} {display['text']} {format_price(status.unit_price)}/kWh, "
        f"{status.minutes_remaining} minutes remaining"
    )


def describe_recommendation(rec: DelayRecommendation) -> str:
    """User-facing framing of a delay recommendation."""
    if not rec.found:
        if rec.current_price is None:
            return "No pricing data for the current time"
        return "Use electricity now - good price!"
    if rec.delay_hours <= 0:
        return "Use electricity now - good price!"
    text = f"Start in {rec.delay_hours:.1f} hours (next cheap slot {rec.time_label})"
    if rec.savings > 0:
        text += f", save {rec.savings:.1f}p"
    return text
