"""Human-readable names for time-of-use rate blocks.

Retailers publish TOU blocks with a bare type (PEAK, OFF_PEAK, ...) and often
an unhelpful displayName, so names are derived from rate and window shape:

- a near-zero rate is a free-power block: "Solar Sponge" when it sits
  inside the middle of the day, "Super Off-Peak" otherwise;
- a low rate confined to the early morning is an "EV Charging" block;
- anything else is named by type, with "Weekend"/"Weekday" and time-window
  qualifiers added only when needed to tell blocks apart.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from plansync.config import settings

WEEKDAYS = frozenset({"MON", "TUE", "WED", "THU", "FRI"})
WEEKEND = frozenset({"SAT", "SUN"})

TYPE_NAMES = {
    "PEAK": "Peak",
    "OFF_PEAK": "Off-Peak",
    "SHOULDER": "Shoulder",
    "SHOULDER1": "Shoulder",
    "SHOULDER2": "Shoulder",
    "SOLAR_SPONGE": "Solar Sponge",
}

_TIME_RE = re.compile(r"^(\d{1,2}):?(\d{2})")

MIDDAY_START = 9 * 60
MIDDAY_END = 16 * 60
EARLY_MORNING_LATEST_START = 6 * 60
EARLY_MORNING_LATEST_END = 8 * 60


@dataclass
class RateBlock:
    """Input to naming: one TOU block as published."""

    type: str
    rate: Optional[float]
    time_windows: list[dict[str, Any]] = field(default_factory=list)


def parse_time(value: Optional[str]) -> Optional[int]:
    """Parse ``HH:MM``, ``HHMM`` or ``HH:MM:SS`` into minutes after midnight."""
    if not value:
        return None
    match = _TIME_RE.match(value.strip())
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 24 or minutes > 59:
        return None
    return hours * 60 + minutes


def format_window(window: dict[str, Any]) -> str:
    start = parse_time(window.get("startTime"))
    end = parse_time(window.get("endTime"))
    if start is None or end is None:
        return ""
    return f"{start // 60:02d}:{start % 60:02d}-{end // 60:02d}:{end % 60:02d}"


def _spans(windows: Sequence[dict[str, Any]]) -> list[tuple[int, int]]:
    spans = []
    for window in windows:
        start = parse_time(window.get("startTime"))
        end = parse_time(window.get("endTime"))
        if start is not None and end is not None:
            spans.append((start, end))
    return spans


def _within_midday(windows: Sequence[dict[str, Any]]) -> bool:
    spans = _spans(windows)
    return bool(spans) and all(
        MIDDAY_START <= start < end <= MIDDAY_END for start, end in spans
    )


def _early_morning(windows: Sequence[dict[str, Any]]) -> bool:
    spans = _spans(windows)
    return bool(spans) and all(
        start < EARLY_MORNING_LATEST_START and start < end <= EARLY_MORNING_LATEST_END
        for start, end in spans
    )


def _days(windows: Sequence[dict[str, Any]]) -> set[str]:
    days: set[str] = set()
    for window in windows:
        days.update(str(d).upper() for d in window.get("days") or [])
    return days


def base_name(
    block: RateBlock,
    near_zero_threshold: Optional[float] = None,
    ev_threshold: Optional[float] = None,
) -> str:
    """Name one block without looking at its siblings."""
    near_zero = settings.near_zero_rate_threshold if near_zero_threshold is None else near_zero_threshold
    ev_rate = settings.ev_rate_threshold if ev_threshold is None else ev_threshold
    rate_type = (block.type or "").upper()

    if block.rate is not None and block.rate <= near_zero:
        if rate_type == "SOLAR_SPONGE" or _within_midday(block.time_windows):
            return "Solar Sponge"
        return "Super Off-Peak"

    if (
        block.rate is not None
        and block.rate < ev_rate
        and rate_type != "PEAK"
        and _early_morning(block.time_windows)
    ):
        return "EV Charging"

    name = TYPE_NAMES.get(rate_type)
    if name is None:
        name = rate_type.replace("_", " ").title() if rate_type else "Usage"

    days = _days(block.time_windows)
    if days and days <= WEEKEND:
        name = f"Weekend {name}"
    return name


def name_rate_blocks(blocks: Sequence[RateBlock]) -> list[str]:
    """
    Name every block of a plan so that names are distinct where possible.

    Args:
        blocks: TOU blocks in published order

    Returns:
        Display names, index-aligned with ``blocks``
    """
    names = [base_name(b) for b in blocks]

    # Weekday qualifier for weekday-only blocks sharing a name
    for idx, name in enumerate(names):
        if names.count(name) > 1:
            days = _days(blocks[idx].time_windows)
            if days and days <= WEEKDAYS:
                names[idx] = f"Weekday {name}"

    # Time-window suffix for whatever still collides
    duplicates = {n for n in names if names.count(n) > 1}
    for idx, name in enumerate(names):
        if name in duplicates and blocks[idx].time_windows:
            window = format_window(blocks[idx].time_windows[0])
            if window:
                names[idx] = f"{name} ({window})"

    return names
