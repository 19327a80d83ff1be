"""
Multi-month ("period mode") aggregation of budgets and guidelines.

Each month contributes its own guideline: the current month is prorated to
today, every other month counts in full. Totals for a range are the sum of
those per-month contributions.
"""

import logging
from datetime import date
from typing import Callable, Iterable, Mapping, Optional, Sequence, Union

from budget_normalizer import NormalizedBudget, coerce_amount, round_half_up
from calendar_utils import YearMonth, clamp, today_or

logger = logging.getLogger(__name__)

BudgetLookup = Union[Mapping[YearMonth, float], Callable[[YearMonth], float]]


def guideline_of_month(
    month: YearMonth,
    budget: float,
    guide_factor: float,
    today: Optional[date] = None
) -> int:
    """
    Guideline contribution of a single month.

    Args:
        month: Month being evaluated
        budget: That month's budget for the scope
        guide_factor: Multiplier applied to the budget
        today: Reference day (defaults to date.today())

    Returns:
        ``budget * day/days_in_month * factor`` for the current month,
        ``budget * factor`` for any other month, 0 when there is no budget
    """
    if budget <= 0:
        return 0
    today = today_or(today)
    if month != YearMonth.from_date(today):
        return round_half_up(budget * guide_factor)
    dim = month.days_in_month
    day = clamp(today.day, 1, dim)
    return round_half_up(budget / dim * day * guide_factor)


def _lookup(lookup: BudgetLookup, month: YearMonth) -> float:
    if callable(lookup):
        return coerce_amount(lookup(month))
    return coerce_amount(lookup.get(month, 0.0))


def sum_across_months(
    months: Iterable[YearMonth],
    per_month_budget_lookup: BudgetLookup,
    guide_factor: float,
    today: Optional[date] = None
) -> int:
    """
    Sum each month's own guideline over a range.

    Args:
        months: Months in the range
        per_month_budget_lookup: Mapping or callable giving each month's budget
        guide_factor: Multiplier applied to every month's budget
        today: Reference day used to prorate the current month

    Returns:
        Total guideline for the range
    """
    today = today_or(today)
    return sum(
        guideline_of_month(month, _lookup(per_month_budget_lookup, month), guide_factor, today)
        for month in months
    )


def category_guideline_in_range(
    months: Sequence[YearMonth],
    normalized_by_month: Mapping[YearMonth, NormalizedBudget],
    category: str,
    guide_factor: float,
    today: Optional[date] = None
) -> int:
    """Range guideline for one category."""
    empty = NormalizedBudget()
    return sum_across_months(
        months,
        lambda ym: normalized_by_month.get(ym, empty).category_total(category),
        guide_factor,
        today,
    )


def subcategory_guideline_in_range(
    months: Sequence[YearMonth],
    normalized_by_month: Mapping[YearMonth, NormalizedBudget],
    category: str,
    sub_category: str,
    guide_factor: float,
    today: Optional[date] = None
) -> int:
    """Range guideline for one category/subcategory pair."""
    empty = NormalizedBudget()
    return sum_across_months(
        months,
        lambda ym: normalized_by_month.get(ym, empty).sub_total(category, sub_category),
        guide_factor,
        today,
    )


def budget_in_range(
    months: Sequence[YearMonth],
    normalized_by_month: Mapping[YearMonth, NormalizedBudget],
    categories: Sequence[str]
) -> float:
    """Unscaled budget total of ``categories`` across the range."""
    empty = NormalizedBudget()
    return sum(normalized_by_month.get(ym, empty).total(categories) for ym in months)
