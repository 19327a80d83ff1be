"""
Tests for calendar helpers: YearMonth, strict parsing, ranges and day weights.
"""

from datetime import date

import pytest

from calendar_utils import (
    EPOCH_YEAR_MONTH,
    YearMonth,
    chunked,
    day_weight,
    days_in_month,
    is_weekend,
    month_dates,
    months_between,
    parse_calendar_date,
    parse_year_month,
    year_month_or_default,
)
from exceptions import CalendarParseError


class TestYearMonth:
    """Test the YearMonth value type."""

    def test_str_is_zero_padded(self):
        assert str(YearMonth(2024, 2)) == "2024-02"

    def test_leap_year_february(self):
        assert YearMonth(2024, 2).days_in_month == 29
        assert YearMonth(2023, 2).days_in_month == 28
        assert YearMonth(1900, 2).days_in_month == 28
        assert YearMonth(2000, 2).days_in_month == 29

    def test_shift_crosses_year_boundary(self):
        assert YearMonth(2024, 12).shift(1) == YearMonth(2025, 1)
        assert YearMonth(2024, 1).shift(-1) == YearMonth(2023, 12)

    def test_next_month_start(self):
        assert YearMonth(2024, 12).next_month_start == date(2025, 1, 1)

    def test_dates_cover_whole_month(self):
        days = YearMonth(2024, 2).dates()
        assert len(days) == 29
        assert days[0] == date(2024, 2, 1)
        assert days[-1] == date(2024, 2, 29)

    def test_ordering(self):
        assert YearMonth(2023, 12) < YearMonth(2024, 1)

    def test_invalid_month_raises(self):
        with pytest.raises(CalendarParseError):
            YearMonth(2024, 13)


class TestParsing:
    """Test strict string parsing."""

    def test_parse_year_month(self):
        assert parse_year_month("2024-02") == YearMonth(2024, 2)
        assert parse_year_month("2024-2") == YearMonth(2024, 2)

    @pytest.mark.parametrize("value", ["", "2024", "2024-13", "2024-00", "24-02", "abc", None])
    def test_parse_year_month_rejects_malformed(self, value):
        with pytest.raises(CalendarParseError):
            parse_year_month(value)

    def test_parse_calendar_date(self):
        assert parse_calendar_date("2024-02-29") == date(2024, 2, 29)

    @pytest.mark.parametrize("value", ["2023-02-29", "2024-02", "2024/02/01", ""])
    def test_parse_calendar_date_rejects_malformed(self, value):
        with pytest.raises(CalendarParseError):
            parse_calendar_date(value)

    def test_year_month_or_default_substitutes_epoch(self, caplog):
        assert year_month_or_default("garbage") == EPOCH_YEAR_MONTH
        assert "Malformed year-month" in caplog.text

    def test_module_level_helpers(self):
        assert days_in_month("2024-02") == 29
        assert len(month_dates("2024-04")) == 30


class TestRangesAndWeights:
    """Test month ranges, weekend detection and day weights."""

    def test_months_between_inclusive_and_ascending(self):
        months = months_between("2024-11", "2025-02")
        assert [str(m) for m in months] == ["2024-11", "2024-12", "2025-01", "2025-02"]
        assert months_between("2025-02", "2024-11") == months

    def test_single_month_range(self):
        assert months_between("2024-02", "2024-02") == [YearMonth(2024, 2)]

    def test_is_weekend(self):
        assert is_weekend(date(2024, 2, 3))  # Saturday
        assert is_weekend(date(2024, 2, 4))  # Sunday
        assert not is_weekend(date(2024, 2, 5))

    def test_day_weight(self):
        saturday = date(2024, 2, 3)
        monday = date(2024, 2, 5)
        assert day_weight(saturday, boosted=True) == 20
        assert day_weight(monday, boosted=True) == 1
        assert day_weight(saturday, boosted=False) == 1
        assert day_weight(saturday, boosted=True, ratio=5) == 5

    def test_chunked(self):
        assert list(chunked(list(range(23)), 10)) == [
            list(range(10)),
            list(range(10, 20)),
            [20, 21, 22],
        ]

    def test_chunked_rejects_zero_size(self):
        with pytest.raises(ValueError):
            list(chunked([1, 2], 0))
