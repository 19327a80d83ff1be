"""
Tests for actual-spend series and scope filters.
"""

from datetime import date

from actuals import (
    category_actuals,
    daily_actual_series,
    exclude_categories,
    expenses_frame,
    filter_by_category_sub,
    filter_by_source,
    first_day_actual,
    is_stale,
    latest_entry_date,
    monthly_actual_series,
    subcategory_actuals,
)
from calendar_utils import YearMonth, months_between
from database_ops import ExpenseRecord

FEB = YearMonth(2024, 2)
SUBCATEGORIES = {"Food": ["Groceries", "Dining Out", "Free input"]}


def expense(day, amount, category="Food", sub="Groceries", registrant="Alex", source="Card", month=None):
    return ExpenseRecord(
        id=None,
        registrant=registrant,
        date=day,
        month=month or day[:7],
        amount=amount,
        category=category,
        sub_category=sub,
        source=source,
    )


class TestFilters:
    """Test scope filters."""

    def test_filter_by_source_matches_substring(self):
        rows = [expense("2024-02-01", 1, source="Visa Card"), expense("2024-02-01", 2, source="Cash")]
        assert [r.amount for r in filter_by_source(rows, "Card")] == [1]
        assert len(filter_by_source(rows, None)) == 2

    def test_exclude_categories(self):
        rows = [expense("2024-02-01", 1), expense("2024-02-01", 2, category="Savings")]
        assert [r.amount for r in exclude_categories(rows, ["Savings"])] == [1]

    def test_subcategory_filter(self):
        rows = [
            expense("2024-02-01", 1, sub="Groceries"),
            expense("2024-02-01", 2, sub="Dining Out "),
            expense("2024-02-01", 3, sub="Bakery"),
        ]
        picked = filter_by_category_sub(rows, "Food", "Dining Out", SUBCATEGORIES, "Free input")
        assert [r.amount for r in picked] == [2]

    def test_free_input_bucket_collects_unofficial_subcategories(self):
        rows = [expense("2024-02-01", 1, sub="Groceries"), expense("2024-02-01", 3, sub="Bakery")]
        picked = filter_by_category_sub(rows, "Food", "Free input", SUBCATEGORIES, "Free input")
        assert [r.amount for r in picked] == [3]

    def test_registrant_split_category(self):
        rows = [
            expense("2024-02-01", 1, category="Entertainment", registrant="Alex"),
            expense("2024-02-01", 2, category="Entertainment", registrant="Sam"),
        ]
        picked = filter_by_category_sub(rows, "Entertainment", "Sam", SUBCATEGORIES, "Free input", ["Entertainment"])
        assert [r.amount for r in picked] == [2]

    def test_no_category_keeps_everything(self):
        rows = [expense("2024-02-01", 1), expense("2024-02-01", 2, category="Car")]
        assert len(filter_by_category_sub(rows, None, None, SUBCATEGORIES, "Free input")) == 2


class TestSeries:
    """Test daily and monthly actual series."""

    def test_daily_series_zero_fills_and_accumulates(self):
        rows = [expense("2024-02-01", 100), expense("2024-02-01", 50), expense("2024-02-03", 25)]
        days = FEB.dates()

        periodic = daily_actual_series(rows, days)
        cumulative = daily_actual_series(rows, days, cumulative=True)

        assert [p.value for p in periodic[:4]] == [150, 0, 25, 0]
        assert [p.value for p in cumulative[:4]] == [150, 150, 175, 175]
        assert cumulative[-1].value == 175
        assert cumulative[-1].key == date(2024, 2, 29)

    def test_daily_series_skips_malformed_dates(self, caplog):
        rows = [expense("2024-02-01", 100), expense("2024-02-31", 999, month="2024-02")]
        series = daily_actual_series(rows, FEB.dates(), cumulative=True)
        assert series[-1].value == 100
        assert "malformed dates" in caplog.text

    def test_daily_series_empty_rows(self):
        assert [p.value for p in daily_actual_series([], FEB.dates())] == [0] * 29

    def test_monthly_series_uses_stored_month(self):
        rows = [
            expense("2024-01-10", 100),
            expense("2024-03-01", 40, month="2024-02"),
            expense("2024-03-05", 7),
        ]
        months = months_between("2024-01", "2024-03")
        assert [p.value for p in monthly_actual_series(rows, months)] == [100, 40, 7]
        assert [p.value for p in monthly_actual_series(rows, months, cumulative=True)] == [100, 140, 147]

    def test_first_day_actual(self):
        rows = [expense("2024-02-01", 100), expense("2024-02-02", 50)]
        assert first_day_actual(rows, FEB) == 100

    def test_expenses_frame_columns(self):
        df = expenses_frame([expense("2024-02-01", 100)])
        assert df.loc[0, "day"] == date(2024, 2, 1)
        assert df.loc[0, "amount"] == 100


class TestBreakdowns:
    """Test per-category and per-subcategory totals."""

    def test_category_actuals_include_zero_categories(self):
        rows = [expense("2024-02-01", 100), expense("2024-02-02", 5, category="Car")]
        assert category_actuals(rows, ["Food", "Car", "Medical"]) == {"Food": 100, "Car": 5, "Medical": 0}

    def test_subcategory_actuals_with_free_input(self):
        rows = [
            expense("2024-02-01", 100, sub="Groceries"),
            expense("2024-02-01", 30, sub="Bakery"),
            expense("2024-02-01", 9, category="Car", sub="Fuel"),
        ]
        totals = subcategory_actuals(rows, "Food", SUBCATEGORIES, "Free input")
        assert totals == {"Groceries": 100, "Dining Out": 0, "Free input": 30}

    def test_subcategory_actuals_by_registrant(self):
        rows = [
            expense("2024-02-01", 10, category="Entertainment", registrant="Alex"),
            expense("2024-02-01", 20, category="Entertainment", registrant="Sam"),
        ]
        totals = subcategory_actuals(rows, "Entertainment", SUBCATEGORIES, "Free input", ["Entertainment"], ["Alex", "Sam"])
        assert totals == {"Alex": 10, "Sam": 20}


class TestStaleness:
    """Test late-entry detection."""

    def test_latest_entry_date_per_registrant(self):
        rows = [expense("2024-02-01", 1), expense("2024-02-09", 1, registrant="Sam"), expense("2024-02-05", 1)]
        assert latest_entry_date(rows) == date(2024, 2, 9)
        assert latest_entry_date(rows, "Alex") == date(2024, 2, 5)
        assert latest_entry_date(rows, "Kim") is None

    def test_is_stale_threshold(self):
        today = date(2024, 2, 10)
        assert not is_stale(date(2024, 2, 8), today, 3)
        assert is_stale(date(2024, 2, 7), today, 3)
        assert is_stale(None, today, 3)
