"""
Tests for month-end forecast projection.
"""

from datetime import date

import pytest

from calendar_utils import YearMonth
from exceptions import GuidelineError
from forecast import effective_day, project
from guideline import GuidelinePoint


class TestProject:
    """Test linear extrapolation of cumulative actuals."""

    def test_day_one_returns_first_value(self):
        forecast = project([1234, 1234], 30, 1, 10000)
        assert forecast.month_end_value == 1234
        assert forecast.diff == 10000 - 1234

    def test_flat_series_projects_first_value(self):
        series = [5000] * 15
        assert project(series, 31, 15, 20000).month_end_value == 5000

    def test_linear_extrapolation(self):
        # 1000 on day 1, +500/day after that
        series = [1000 + 500 * i for i in range(10)]
        forecast = project(series, 30, 10, 20000)
        assert forecast.month_end_value == 1000 + 500 * 29
        assert forecast.remaining == forecast.diff == 20000 - 15500
        assert not forecast.is_overspend

    def test_overspend_has_negative_remaining(self):
        series = [0, 2000, 4000]
        forecast = project(series, 31, 3, 10000)
        assert forecast.month_end_value == 60000
        assert forecast.remaining == -50000
        assert forecast.is_overspend

    def test_current_day_is_clamped(self):
        series = [0] * 29 + [2900]
        assert project(series, 29, 45, 0).current_day == 29
        assert project(series, 29, 0, 0).current_day == 1

    def test_missing_entries_count_as_zero(self):
        forecast = project([None, None], 30, 5, 100)
        assert forecast.month_end_value == 0
        assert forecast.diff == 100

    def test_accepts_guideline_points(self):
        series = [GuidelinePoint(date(2024, 2, d), 100 * d) for d in range(1, 3)]
        assert project(series, 29, 2, 0).month_end_value == 2900

    def test_invalid_month_length_raises(self):
        with pytest.raises(GuidelineError):
            project([1], 0, 1, 100)

    def test_to_dict(self):
        data = project([10], 30, 1, 100).to_dict()
        assert data["monthEndValue"] == 10
        assert data["remaining"] == 90


class TestEffectiveDay:
    """Test the day used for projections."""

    def test_current_month_uses_today(self):
        assert effective_day(YearMonth(2024, 2), date(2024, 2, 10)) == 10

    def test_past_month_uses_last_day(self):
        assert effective_day(YearMonth(2024, 1), date(2024, 2, 10)) == 31

    def test_future_month_uses_last_day(self):
        assert effective_day(YearMonth(2024, 4), date(2024, 2, 10)) == 30

    @pytest.mark.parametrize("today", [date(2024, 2, 1), date(2024, 2, 29), date(2023, 12, 31), date(2024, 3, 1)])
    def test_always_within_month(self, today):
        assert 1 <= effective_day(YearMonth(2024, 2), today) <= 29
