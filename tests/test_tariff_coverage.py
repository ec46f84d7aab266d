"""Tests for 24-hour TOU coverage validation."""

from plansync.ingest.tariff_coverage import DAYS, validate_coverage

ALL_DAYS = list(DAYS)


def period(rate, *windows, days=None):
    return {
        "rate": rate,
        "time_windows": [
            {"days": days or ALL_DAYS, "startTime": start, "endTime": end} for start, end in windows
        ],
    }


class TestValidateCoverage:
    def test_full_day_coverage(self):
        result = validate_coverage([
            period(0.45, ("15:00", "21:00")),
            period(0.30, ("07:00", "15:00"), ("21:00", "23:00")),
            period(0.18, ("23:00", "07:00")),
        ])

        assert result.is_clean
        assert result.has_24_hour_coverage

    def test_midnight_end_means_end_of_day(self):
        result = validate_coverage([
            period(0.2, ("00:00", "12:00")),
            period(0.3, ("12:00", "00:00")),
        ])

        assert result.is_clean

    def test_all_day_window(self):
        assert validate_coverage([period(0.25, ("00:00", "00:00"))]).is_clean

    def test_gap_is_reported_per_day(self):
        result = validate_coverage([
            period(0.45, ("15:00", "21:00")),
            period(0.18, ("21:00", "14:00")),
        ])

        assert not result.has_24_hour_coverage
        assert len(result.gaps) == 7
        assert result.gaps[0] == {"day": "MON", "startTime": "14:00", "endTime": "15:00"}
        assert result.overlaps == []

    def test_overlap_lists_rates(self):
        result = validate_coverage([
            period(0.45, ("14:00", "21:00")),
            period(0.18, ("20:00", "14:00")),
        ])

        assert result.has_24_hour_coverage
        assert not result.is_clean
        assert result.overlaps[0] == {
            "day": "MON",
            "startTime": "20:00",
            "endTime": "21:00",
            "rates": [0.18, 0.45],
        }

    def test_weekend_only_windows_leave_weekdays_uncovered(self):
        result = validate_coverage([period(0.2, ("00:00", "00:00"), days=["SAT", "SUN"])])

        assert {g["day"] for g in result.gaps} == {"MON", "TUE", "WED", "THU", "FRI"}
        assert all(g["startTime"] == "00:00" and g["endTime"] == "24:00" for g in result.gaps)

    def test_unparseable_windows_are_ignored(self):
        result = validate_coverage([period(0.2, ("bad", "12:00")), period(0.3, ("00:00", "00:00"))])

        assert result.is_clean

    def test_no_periods(self):
        result = validate_coverage([])

        assert len(result.gaps) == 7
