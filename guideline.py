"""
Guideline series construction.

A guideline is the "expected spend so far" reference line derived from a
budget. It is produced either per day within one month or per month across
a range, and either as periodic amounts or as a cumulative curve.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from budget_normalizer import coerce_amount, round_half_up
from calendar_utils import WEEKEND_BOOST_RATIO, YearMonth, day_weight, parse_year_month
from exceptions import CalendarParseError, GuidelineError
from range_aggregator import guideline_of_month

logger = logging.getLogger(__name__)

# Safety margin applied to the nominal budget, and the "full budget" setting.
DEFAULT_GUIDE_FACTOR = 0.95
FULL_GUIDE_FACTOR = 1.0

PointKey = Union[date, YearMonth]


class Granularity(enum.Enum):
    DAILY = "daily"
    MONTHLY = "monthly"


class Periodicity(enum.Enum):
    PERIODIC = "periodic"
    CUMULATIVE = "cumulative"


@dataclass(frozen=True)
class GuidelinePoint:
    """
    One point of a guideline or actual series.

    Attributes:
        key: Calendar day (daily series) or YearMonth (monthly series)
        value: Amount, rounded to the currency unit
    """
    key: PointKey
    value: int

    def to_dict(self) -> Dict[str, Any]:
        key = self.key.isoformat() if isinstance(self.key, date) else str(self.key)
        return {"key": key, "value": self.value}


@dataclass
class GuidelineParams:
    """
    Inputs for :func:`build_guideline`.

    Attributes:
        granularity: Daily points within one month, or monthly points over a range
        periodicity: Per-period amounts or a running total
        base_budget_amount: Monthly budget for the scope
        guide_factor: Multiplier applied to the budget (0.95 or 1.0)
        calendar_dates: Days (daily) or months (monthly), in output order
        first_period_actual: Actual spend of the first day, used to anchor the cumulative curve
        weekend_boosted: Give Saturday/Sunday ``weekend_boost_ratio`` times a weekday's share
        weekend_boost_ratio: Weekend weight when boosted
        month_budgets: Monthly granularity only; budget per month (every month uses base_budget_amount when None)
        today: Monthly granularity only; the day used to prorate the current month
    """
    granularity: Union[Granularity, str]
    periodicity: Union[Periodicity, str]
    base_budget_amount: float
    guide_factor: float = DEFAULT_GUIDE_FACTOR
    calendar_dates: Sequence[PointKey] = field(default_factory=list)
    first_period_actual: float = 0.0
    weekend_boosted: bool = False
    weekend_boost_ratio: int = WEEKEND_BOOST_RATIO
    month_budgets: Optional[Mapping[YearMonth, float]] = None
    today: Optional[date] = None


def as_enum(enum_cls, value, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError as e:
        raise GuidelineError(
            f"Unknown {label}",
            details={label: value},
            original_error=e
        ) from e


def _zero_series(keys: Sequence[PointKey]) -> List[GuidelinePoint]:
    return [GuidelinePoint(key, 0) for key in keys]


def build_guideline(params: GuidelineParams) -> List[GuidelinePoint]:
    """
    Build the guideline series for one scope.

    Args:
        params: Guideline inputs

    Returns:
        One GuidelinePoint per entry of ``params.calendar_dates``, same order

    Raises:
        GuidelineError: If granularity/periodicity is unknown or the keys do
            not match the granularity
    """
    granularity = as_enum(Granularity, params.granularity, "granularity")
    periodicity = as_enum(Periodicity, params.periodicity, "periodicity")
    keys = list(params.calendar_dates)
    if not keys:
        return []

    if granularity is Granularity.MONTHLY:
        return _build_monthly(params, periodicity, keys)
    return _build_daily(params, periodicity, keys)


def _build_daily(
    params: GuidelineParams,
    periodicity: Periodicity,
    days: List[PointKey]
) -> List[GuidelinePoint]:
    for day in days:
        if not isinstance(day, date):
            raise GuidelineError("Daily guideline needs calendar dates", details={"key": day})

    end_value = coerce_amount(params.base_budget_amount) * coerce_amount(params.guide_factor)
    if end_value <= 0:
        return _zero_series(days)

    weights = [day_weight(d, params.weekend_boosted, params.weekend_boost_ratio) for d in days]

    if periodicity is Periodicity.PERIODIC:
        if params.weekend_boosted:
            total_weight = sum(weights) or 1
            return [
                GuidelinePoint(d, round_half_up(end_value * w / total_weight))
                for d, w in zip(days, weights)
            ]
        per_day = end_value / len(days)
        return [GuidelinePoint(d, round_half_up(per_day)) for d in days]

    return [
        GuidelinePoint(d, v)
        for d, v in zip(days, _cumulative_values(params, end_value, weights))
    ]


def _cumulative_values(params: GuidelineParams, end_value: float, weights: List[int]) -> List[int]:
    """
    Cumulative guideline, optionally anchored to the first day's actual.

    When the first day already has spend, day 1 equals that spend and the
    rest of the budget is spread over days 2..N; otherwise the whole budget
    is spread from 0. The remaining budget is never negative.
    """
    count = len(weights)
    start = round_half_up(coerce_amount(params.first_period_actual))

    if count == 1:
        return [round_half_up(max(float(start), end_value))]

    if start > 0:
        remaining = max(end_value - start, 0.0)
        if not params.weekend_boosted:
            return [round_half_up(start + remaining * i / (count - 1)) for i in range(count)]
        tail = weights[1:]
        total_weight = sum(tail) or 1
        values = [start]
        running = float(start)
        for w in tail:
            running += remaining * w / total_weight
            values.append(round_half_up(running))
        return values

    if not params.weekend_boosted:
        return [round_half_up(end_value * i / (count - 1)) for i in range(count)]
    total_weight = sum(weights) or 1
    values = []
    running = 0.0
    for w in weights:
        running += end_value * w / total_weight
        values.append(round_half_up(running))
    return values


def _build_monthly(
    params: GuidelineParams,
    periodicity: Periodicity,
    keys: List[PointKey]
) -> List[GuidelinePoint]:
    months: List[YearMonth] = []
    for key in keys:
        try:
            months.append(parse_year_month(key))
        except CalendarParseError as e:
            raise GuidelineError(
                "Monthly guideline needs year-month keys",
                details={"key": key},
                original_error=e
            ) from e

    budgets = params.month_budgets
    points: List[GuidelinePoint] = []
    running = 0
    for month in months:
        # A month missing from an explicit budget map has no budget.
        budget = params.base_budget_amount if budgets is None else budgets.get(month, 0.0)
        value = guideline_of_month(month, coerce_amount(budget), params.guide_factor, params.today)
        if periodicity is Periodicity.CUMULATIVE:
            running += value
            value = running
        points.append(GuidelinePoint(month, value))
    return points
