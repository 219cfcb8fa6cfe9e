"""
Tests for parsing the /report period.
"""

from datetime import date, datetime

import pytest

from src.services.report_query_flow import parse_report_range

TODAY = date(2025, 1, 16)


class TestDayCount:

    def test_last_n_days_end_today(self):
        result = parse_report_range("7", TODAY)

        assert result.start == datetime(2025, 1, 10, 0, 0)
        assert result.end == datetime(2025, 1, 16, 23, 59, 59)
        assert result.has_time is False

    def test_clamped_low(self):
        result = parse_report_range("0", TODAY)
        assert result.start_date == TODAY
        assert result.end_date == TODAY

    def test_clamped_high(self):
        result = parse_report_range("45", TODAY, max_days=30)
        assert result.start_date == date(2024, 12, 18)


class TestDateTokens:

    def test_single_day(self):
        result = parse_report_range("2025-01-05", TODAY)

        assert result.start == datetime(2025, 1, 5, 0, 0)
        assert result.end == datetime(2025, 1, 5, 23, 59, 59)
        assert result.describe() == "2025-01-05"

    def test_inclusive_range(self):
        result = parse_report_range("2025-01-01 2025-01-05", TODAY)

        assert result.start_date == date(2025, 1, 1)
        assert result.end_date == date(2025, 1, 5)
        assert result.describe() == "2025-01-01 to 2025-01-05"

    def test_range_with_times(self):
        result = parse_report_range("2025-01-01 08:00 2025-01-01 17:30", TODAY)

        assert result.start == datetime(2025, 1, 1, 8, 0)
        assert result.end == datetime(2025, 1, 1, 17, 30)
        assert result.has_time is True
        assert result.describe() == "2025-01-01 08:00 to 2025-01-01 17:30"

    def test_time_on_start_only(self):
        result = parse_report_range("2025-01-01 9:15 2025-01-02", TODAY)

        assert result.start == datetime(2025, 1, 1, 9, 15)
        assert result.end == datetime(2025, 1, 2, 23, 59, 59)

    @pytest.mark.parametrize("text", [
        "",
        "abc",
        "-3",
        "2025-13-01",
        "2025-02-30",
        "2025-01-01 25:00",
        "2025-01-01 2025-01-02 2025-01-03",
        "08:00 2025-01-01",
        "2025-01-05 2025-01-01",
        "2025-01-01 17:00 2025-01-01 08:00",
        "last week",
    ])
    def test_malformed_or_reversed(self, text):
        assert parse_report_range(text, TODAY) is None
