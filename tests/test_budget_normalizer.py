"""
Tests for budget document normalization.
"""

import pytest

from budget_normalizer import (
    BudgetRecord,
    NormalizedBudget,
    coerce_amount,
    normalize,
    round_half_up,
    sum_normalized,
)
from exceptions import BudgetError

CATEGORIES = ["Food", "Utilities", "Car"]


class TestAmountHelpers:
    """Test coercion and rounding helpers."""

    @pytest.mark.parametrize(
        "value, expected",
        [(None, 0.0), ("abc", 0.0), (float("nan"), 0.0), (float("inf"), 0.0), (True, 0.0), ("120", 120.0), (3, 3.0)],
    )
    def test_coerce_amount(self, value, expected):
        assert coerce_amount(value) == expected

    @pytest.mark.parametrize("value, expected", [(0.5, 1), (1.5, 2), (2.4999, 2), (-0.5, 0), (-1.5, -1)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected


class TestNormalize:
    """Test the max-of-three reconciliation rule."""

    def test_category_budgets_win_when_largest(self):
        doc = {"categoryBudgets": {"Food": 50000}, "items": {"Food": 30000}}
        assert normalize(doc, CATEGORIES).category_total("Food") == 50000

    def test_legacy_items_win_when_largest(self):
        doc = {"categoryBudgets": {"Food": 30000}, "items": {"Food": 45000}}
        assert normalize(doc, CATEGORIES).category_total("Food") == 45000

    def test_sub_budget_sum_wins_when_largest(self):
        doc = {
            "categoryBudgets": {"Food": 30000},
            "subBudgets": {"Food": {"Groceries": 25000, "Dining Out": 15000}},
        }
        normalized = normalize(doc, CATEGORIES)
        assert normalized.category_total("Food") == 40000
        assert normalized.sub_total("Food", "Dining Out") == 15000

    def test_category_total_never_below_sub_budget_sum(self):
        doc = {
            "categoryBudgets": {"Food": 1000, "Car": 99999},
            "items": {"Utilities": 5},
            "subBudgets": {"Food": {"A": 700, "B": 800}, "Car": {"Fuel": 10}},
        }
        normalized = normalize(doc, CATEGORIES)
        for category in CATEGORIES:
            subs = normalized.sub_totals[category]
            assert normalized.category_total(category) >= sum(subs.values())

    def test_missing_document_gives_zero_totals(self):
        normalized = normalize(None, CATEGORIES)
        assert normalized.category_totals == {"Food": 0.0, "Utilities": 0.0, "Car": 0.0}
        assert normalized.total() == 0

    def test_garbage_values_become_zero(self):
        doc = {"categoryBudgets": {"Food": "lots", "Car": None}, "items": "not a map"}
        normalized = normalize(doc, CATEGORIES)
        assert normalized.category_total("Food") == 0
        assert normalized.category_total("Car") == 0

    def test_negative_budgets_are_ignored(self):
        doc = {"categoryBudgets": {"Food": -500}}
        assert normalize(doc, CATEGORIES).category_total("Food") == 0

    def test_accepts_budget_record(self):
        record = BudgetRecord(category_budgets={"Food": 100})
        assert normalize(record, CATEGORIES).category_total("Food") == 100

    def test_categories_outside_list_are_dropped(self):
        doc = {"categoryBudgets": {"Pets": 100}}
        assert "Pets" not in normalize(doc, CATEGORIES).category_totals

    def test_total_restricted_to_categories(self):
        doc = {"categoryBudgets": {"Food": 100, "Utilities": 200, "Car": 300}}
        assert normalize(doc, CATEGORIES).total(["Food", "Car"]) == 400


class TestBudgetRecord:
    """Test building records from stored documents."""

    def test_from_document_round_trip_fields(self):
        record = BudgetRecord.from_document({
            "month": "2024-02",
            "registrant": "(all)",
            "categoryBudgets": {"Food": "300"},
        })
        assert record.month == "2024-02"
        assert record.category_budgets == {"Food": 300.0}
        assert record.to_document()["categoryBudgets"] == {"Food": 300.0}

    def test_none_document(self):
        assert BudgetRecord.from_document(None) is None

    def test_non_mapping_document_raises(self):
        with pytest.raises(BudgetError):
            BudgetRecord.from_document(["Food", 100])


class TestSumNormalized:
    """Test adding several months together."""

    def test_sums_categories_and_subcategories(self):
        jan = NormalizedBudget({"Food": 100.0}, {"Food": {"Groceries": 60.0}})
        feb = NormalizedBudget({"Food": 150.0}, {"Food": {"Groceries": 40.0, "Dining Out": 10.0}})
        total = sum_normalized([jan, feb], ["Food"])
        assert total.category_total("Food") == 250
        assert total.sub_total("Food", "Groceries") == 100
        assert total.sub_total("Food", "Dining Out") == 10
