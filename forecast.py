"""
Month-end forecast from a partial cumulative actual series.

The projection is a straight line through day 1 and today: day one often
carries fixed costs, so the slope is measured from the day-one value rather
than from zero.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional, Sequence, Union

from budget_normalizer import coerce_amount, round_half_up
from calendar_utils import YearMonth, clamp, today_or
from exceptions import GuidelineError
from guideline import GuidelinePoint

logger = logging.getLogger(__name__)

SeriesItem = Union[GuidelinePoint, float, int, None]


@dataclass(frozen=True)
class Forecast:
    """
    Projected month-end position for one scope.

    Attributes:
        current_day: Day of month the projection was taken from (after clamping)
        month_end_value: Projected cumulative spend on the last day
        budget: Budget the projection is compared against
        diff: ``budget - month_end_value``; negative means projected overspend
        remaining: Same value and sign as ``diff``
    """
    current_day: int
    month_end_value: int
    budget: float
    diff: float
    remaining: float

    @property
    def is_overspend(self) -> bool:
        return self.diff < 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentDay": self.current_day,
            "monthEndValue": self.month_end_value,
            "budget": self.budget,
            "remaining": self.remaining,
            "diff": self.diff,
        }


def _value_at(series: Sequence[SeriesItem], index: int) -> float:
    if index < 0 or index >= len(series):
        return 0.0
    item = series[index]
    if item is None:
        return 0.0
    if isinstance(item, GuidelinePoint):
        return coerce_amount(item.value)
    return coerce_amount(item)


def project(
    cumulative_actual_series: Sequence[SeriesItem],
    days_in_month: int,
    current_day: int,
    budget_for_scope: float
) -> Forecast:
    """
    Linearly extrapolate cumulative spend to month end.

    Args:
        cumulative_actual_series: Cumulative actuals, index 0 = day 1; missing entries count as 0
        days_in_month: Length of the month
        current_day: Latest day with data (clamped to the month)
        budget_for_scope: Budget to compare the projection with

    Returns:
        Forecast for the month

    Raises:
        GuidelineError: If ``days_in_month`` is less than 1
    """
    if days_in_month < 1:
        raise GuidelineError("days_in_month must be at least 1", details={"days_in_month": days_in_month})

    day = clamp(int(current_day), 1, days_in_month)
    first = _value_at(cumulative_actual_series, 0)
    today_value = _value_at(cumulative_actual_series, day - 1)

    if day == 1:
        month_end_value = round_half_up(first)
    else:
        slope = (today_value - first) / (day - 1)
        month_end_value = round_half_up(first + slope * (days_in_month - 1))

    budget = coerce_amount(budget_for_scope)
    diff = budget - month_end_value
    logger.debug(
        f"Forecast day {day}/{days_in_month}: month end {month_end_value}, budget {budget}, diff {diff}"
    )
    return Forecast(
        current_day=day,
        month_end_value=month_end_value,
        budget=budget,
        diff=diff,
        remaining=diff,
    )


def effective_day(month: YearMonth, today: Optional[date] = None) -> int:
    """
    Day of month to project from.

    Today's day for the current month; the last day for any other month.
    """
    today = today_or(today)
    if month == YearMonth.from_date(today):
        return today.day
    return month.days_in_month
