"""Octopus Agile pricing regions (grid supply point groups)."""

from __future__ import annotations

from enum import Enum

from agile_rates.errors import InvalidRegionError


class Region(str, Enum):
    """Regional pricing zone. The value is the single-letter tariff suffix."""

    EASTERN_ENGLAND = "A"
    EAST_MIDLANDS = "B"
    LONDON = "C"
    MERSEYSIDE_NORTH_WALES = "D"
    WEST_MIDLANDS = "E"
    NORTH_EASTERN_ENGLAND = "F"
    NORTH_WESTERN_ENGLAND = "G"
    SOUTHERN_ENGLAND = "H"
    SOUTH_EASTERN_ENGLAND = "J"
    SOUTH_WESTERN_ENGLAND = "K"
    SOUTH_WALES = "L"
    YORKSHIRE = "M"
    SOUTH_SCOTLAND = "N"
    NORTH_SCOTLAND = "P"

    @property
    def display_name(self) -> str:
        return REGION_NAMES[self]


REGION_NAMES: dict[Region, str] = {
    Region.EASTERN_ENGLAND: "Eastern England",
    Region.EAST_MIDLANDS: "East Midlands",
    Region.LONDON: "London",
    Region.MERSEYSIDE_NORTH_WALES: "Merseyside and Northern Wales",
    Region.WEST_MIDLANDS: "West Midlands",
    Region.NORTH_EASTERN_ENGLAND: "North Eastern England",
    Region.NORTH_WESTERN_ENGLAND: "North Western England",
    Region.SOUTHERN_ENGLAND: "Southern England",
    Region.SOUTH_EASTERN_ENGLAND: "South Eastern England",
    Region.SOUTH_WESTERN_ENGLAND: "South Western England",
    Region.SOUTH_WALES: "South Wales",
    Region.YORKSHIRE: "Yorkshire",
    Region.SOUTH_SCOTLAND: "South Scotland",
    Region.NORTH_SCOTLAND: "North Scotland",
}


def parse_region(code: str | Region | None) -> Region:
    """Normalise a region code ("c", "C" or Region.LONDON) to a Region.

    Raises InvalidRegionError for anything outside the fixed set.
    """
    if isinstance(code, Region):
        return code
    if not isinstance(code, str) or not code.strip():
        raise InvalidRegionError(f"Invalid region code: {code!r}")
    try:
        return Region(code.strip().upper())
    except ValueError:
        raise InvalidRegionError(f"Invalid region code: {code!r}") from None


def is_valid_region(code: str | None) -> bool:
    try:
        parse_region(code)
    except InvalidRegionError:
        return False
    return True


def list_regions() -> list[tuple[str, str]]:
    """Return (code, name) pairs in tariff-letter order."""
    return [(region.value, name) for region, name in REGION_NAMES.items()]
