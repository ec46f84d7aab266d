"""24-hour coverage checks for time-of-use tariff windows."""

from dataclasses import dataclass, field
from typing import Any, Sequence

from plansync.ingest.tariff_naming import parse_time

DAYS = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")
MINUTES_IN_DAY = 24 * 60


@dataclass
class CoverageResult:
    """Gaps (no rate applies) and overlaps (several rates apply) per day."""

    gaps: list[dict[str, Any]] = field(default_factory=list)
    overlaps: list[dict[str, Any]] = field(default_factory=list)

    @property
    def has_24_hour_coverage(self) -> bool:
        return not self.gaps

    @property
    def is_clean(self) -> bool:
        return not self.gaps and not self.overlaps


def _fmt(minutes: int) -> str:
    if minutes == MINUTES_IN_DAY:
        return "24:00"
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _end_minutes(value: str) -> int | None:
    end = parse_time(value)
    # "00:00" as an end time means midnight at the end of the day
    if end == 0:
        return MINUTES_IN_DAY
    return end


def validate_coverage(periods: Sequence[dict[str, Any]]) -> CoverageResult:
    """
    Check that every minute of every day is priced exactly once.

    A window whose end is earlier than its start wraps past midnight and
    covers the tail of the same listed day plus the head of that day.

    Args:
        periods: Items with ``rate`` and ``time_windows``
                 (``[{"days": [...], "startTime": "HH:MM", "endTime": "HH:MM"}]``)

    Returns:
        CoverageResult with gaps and overlaps
    """
    coverage: dict[str, list[list[float]]] = {
        day: [[] for _ in range(MINUTES_IN_DAY)] for day in DAYS
    }

    for period in periods:
        rate = period.get("rate")
        for window in period.get("time_windows") or []:
            start = parse_time(window.get("startTime"))
            end = _end_minutes(window.get("endTime"))
            if start is None or end is None:
                continue
            if end > start:
                ranges = [(start, end)]
            else:
                ranges = [(start, MINUTES_IN_DAY), (0, end)]
            for day in window.get("days") or []:
                minutes = coverage.get(str(day).upper())
                if minutes is None:
                    continue
                for lo, hi in ranges:
                    for minute in range(lo, min(hi, MINUTES_IN_DAY)):
                        minutes[minute].append(rate)

    result = CoverageResult()
    for day in DAYS:
        minutes = coverage[day]
        minute = 0
        while minute < MINUTES_IN_DAY:
            count = len(minutes[minute])
            if count == 1:
                minute += 1
                continue
            run_end = minute + 1
            if count == 0:
                while run_end < MINUTES_IN_DAY and not minutes[run_end]:
                    run_end += 1
                result.gaps.append(
                    {"day": day, "startTime": _fmt(minute), "endTime": _fmt(run_end)}
                )
            else:
                rates: set = set(minutes[minute])
                while run_end < MINUTES_IN_DAY and len(minutes[run_end]) > 1:
                    rates.update(minutes[run_end])
                    run_end += 1
                result.overlaps.append(
                    {
                        "day": day,
                        "startTime": _fmt(minute),
                        "endTime": _fmt(run_end),
                        "rates": sorted(r for r in rates if r is not None),
                    }
                )
            minute = run_end

    return result
