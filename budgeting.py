"""
Budget guideline engine.

Ties the loader, normalizer, guideline builder, forecast projector and range
aggregator together for one scope request: a single month or a contiguous
range of months, optionally narrowed to a category, a subcategory and a
payment source.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from actuals import (
    daily_actual_series,
    exclude_categories,
    filter_by_category_sub,
    filter_by_source,
    first_day_actual,
    is_stale,
    latest_entry_date,
    monthly_actual_series,
)
from budget_normalizer import NormalizedBudget, round_half_up, sum_normalized
from calendar_utils import YearMonth, months_between, parse_year_month, today_or
from config_manager import EngineSettings
from data_fetch import BudgetDataLoader
from database_ops import ExpenseRecord
from exceptions import GuidelineError
from forecast import Forecast, effective_day, project
from guideline import (
    Granularity,
    GuidelineParams,
    GuidelinePoint,
    Periodicity,
    as_enum,
    build_guideline,
)
from range_aggregator import category_guideline_in_range, subcategory_guideline_in_range

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class ScopeRequest:
    """
    What a guideline view should cover.

    Attributes:
        months: Months covered, ascending
        range_mode: Monthly points over ``months`` instead of daily points for one month
        category: Category focus (None = overall)
        sub_category: Subcategory focus within ``category``
        source: Payment source keyword filter (None = all sources)
        periodicity: Per-period amounts or running totals
        guide_full: Use the full-budget guide factor
        include_collapsed: Include collapsed categories in the overall view
    """
    months: List[YearMonth]
    range_mode: bool = False
    category: Optional[str] = None
    sub_category: Optional[str] = None
    source: Optional[str] = None
    periodicity: Periodicity = Periodicity.CUMULATIVE
    guide_full: bool = False
    include_collapsed: bool = False

    def __post_init__(self):
        # The engine compares periodicity by identity
        self.periodicity = as_enum(Periodicity, self.periodicity, "periodicity")

    @classmethod
    def for_month(cls, month, **kwargs) -> "ScopeRequest":
        return cls(months=[parse_year_month(month)], range_mode=False, **kwargs)

    @classmethod
    def for_range(cls, start, end, **kwargs) -> "ScopeRequest":
        return cls(months=months_between(start, end), range_mode=True, **kwargs)

    @property
    def month(self) -> YearMonth:
        """The single month of a non-range request."""
        return self.months[0]


@dataclass
class GuidelineView:
    """
    Result of a scope request.

    Attributes:
        request: The request this view answers
        guide_factor: Factor applied to the budget
        budget: Unscaled budget for the scope over the whole request
        actual_series: Actual spend points (daily or monthly)
        guideline_series: Guideline points aligned with ``actual_series``
        forecast: Month-end projection (single-month requests only)
        weekend_boosted: Whether weekend boosting was applied
    """
    request: ScopeRequest
    guide_factor: float
    budget: float
    actual_series: List[GuidelinePoint] = field(default_factory=list)
    guideline_series: List[GuidelinePoint] = field(default_factory=list)
    forecast: Optional[Forecast] = None
    weekend_boosted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "months": [str(m) for m in self.request.months],
            "category": self.request.category,
            "subCategory": self.request.sub_category,
            "guideFactor": self.guide_factor,
            "budget": self.budget,
            "weekendBoosted": self.weekend_boosted,
            "actual": [p.to_dict() for p in self.actual_series],
            "guideline": [p.to_dict() for p in self.guideline_series],
            "forecast": self.forecast.to_dict() if self.forecast else None,
        }


@dataclass(frozen=True)
class TodayGuide:
    """
    Overall position as of a given day of a month.

    Attributes:
        day: Day of month used (today for the current month, last day otherwise)
        budget: Budget of the visible categories
        guide: Prorated guideline through ``day``
        actual: Spend of the visible categories
        delta: ``actual - guide``; positive means over the guideline
    """
    day: int
    budget: float
    guide: int
    actual: int
    delta: int

    @property
    def is_over(self) -> bool:
        return self.delta > 0


@dataclass(frozen=True)
class GuidelineDiff:
    """Guideline to date versus actual for one subcategory."""
    guideline: int
    actual: int
    diff: int


class BudgetGuidelineEngine:
    """
    Computes guideline views for scope requests.

    Provides the single-month daily view (with forecast), the multi-month
    period view, and the summary figures shown alongside them.
    """

    def __init__(
        self,
        loader: BudgetDataLoader,
        settings: Optional[EngineSettings] = None,
        today: Optional[date] = None
    ):
        """
        Initialize the engine.

        Args:
            loader: Cached data loader
            settings: Engine settings (defaults to the loader's)
            today: Fixed reference day; date.today() is used when None
        """
        self.loader = loader
        self.settings = settings or loader.settings
        self._today = today
        logger.info("Budget guideline engine initialized")

    @property
    def today(self) -> date:
        return today_or(self._today)

    def _scope_rows(self, rows: Sequence[ExpenseRecord], request: ScopeRequest) -> List[ExpenseRecord]:
        scoped = filter_by_source(rows, request.source)
        scoped = filter_by_category_sub(
            scoped,
            request.category,
            request.sub_category,
            self.settings.subcategories,
            self.settings.free_input_label,
            self.settings.registrant_split_categories,
        )
        if not request.category and not request.include_collapsed:
            scoped = exclude_categories(scoped, self.settings.collapsed_categories)
        return scoped

    def scope_budget(self, budget: NormalizedBudget, request: ScopeRequest) -> float:
        """
        Budget amount for the request's focus within one normalized budget.

        Subcategory focus uses the subcategory amount, category focus the
        category total, and the overall view the visible categories' sum.
        """
        if request.category and request.sub_category:
            return budget.sub_total(request.category, request.sub_category)
        if request.category:
            return budget.category_total(request.category)
        return budget.total(self.settings.visible_categories(request.include_collapsed))

    def build_view(self, request: ScopeRequest) -> GuidelineView:
        """
        Build the actual and guideline series for a request.

        Args:
            request: Scope to evaluate

        Returns:
            GuidelineView; ``forecast`` is set only for single-month requests

        Raises:
            GuidelineError: If the request has no months or a subcategory without a category
            DatabaseError: If the store cannot be read
        """
        if not request.months:
            raise GuidelineError("Scope request has no months")
        if request.sub_category and not request.category:
            raise GuidelineError(
                "Subcategory focus requires a category",
                details={"sub_category": request.sub_category}
            )
        if request.range_mode:
            return self._build_range_view(request)
        return self._build_month_view(request)

    def _build_month_view(self, request: ScopeRequest) -> GuidelineView:
        month = request.month
        factor = self.settings.factor(request.guide_full)
        rows = self._scope_rows(self.loader.load_expense_list([month]), request)
        normalized = self.loader.load_normalized_budgets([month])[month]
        budget = self.scope_budget(normalized, request)
        boosted = self.settings.is_weekend_boosted(request.category, request.sub_category)
        days = month.dates()

        guideline_series = build_guideline(GuidelineParams(
            granularity=Granularity.DAILY,
            periodicity=request.periodicity,
            base_budget_amount=budget,
            guide_factor=factor,
            calendar_dates=days,
            first_period_actual=first_day_actual(rows, month),
            weekend_boosted=boosted,
            weekend_boost_ratio=self.settings.weekend_boost_ratio,
        ))

        cumulative_actual = daily_actual_series(rows, days, cumulative=True)
        if request.periodicity is Periodicity.CUMULATIVE:
            actual_series = cumulative_actual
        else:
            actual_series = daily_actual_series(rows, days, cumulative=False)

        forecast = project(
            cumulative_actual,
            month.days_in_month,
            effective_day(month, self.today),
            budget,
        )
        logger.info(
            f"Built guideline view for {month} "
            f"(category={request.category}, sub={request.sub_category}, budget={budget})"
        )
        return GuidelineView(
            request=request,
            guide_factor=factor,
            budget=budget,
            actual_series=actual_series,
            guideline_series=guideline_series,
            forecast=forecast,
            weekend_boosted=boosted,
        )

    def _build_range_view(self, request: ScopeRequest) -> GuidelineView:
        months = request.months
        factor = self.settings.factor(request.guide_full)
        rows = self._scope_rows(self.loader.load_expense_list(months), request)
        normalized = self.loader.load_normalized_budgets(months)
        month_budgets = {m: self.scope_budget(normalized[m], request) for m in months}

        guideline_series = build_guideline(GuidelineParams(
            granularity=Granularity.MONTHLY,
            periodicity=request.periodicity,
            base_budget_amount=0.0,
            guide_factor=factor,
            calendar_dates=months,
            month_budgets=month_budgets,
            today=self.today,
        ))
        actual_series = monthly_actual_series(
            rows,
            months,
            cumulative=request.periodicity is Periodicity.CUMULATIVE,
        )
        logger.info(f"Built period view for {months[0]}..{months[-1]} ({len(months)} months)")
        return GuidelineView(
            request=request,
            guide_factor=factor,
            budget=sum(month_budgets.values()),
            actual_series=actual_series,
            guideline_series=guideline_series,
        )

    def range_budget(self, months: Sequence[YearMonth]) -> NormalizedBudget:
        """Normalized budgets of ``months`` summed into one."""
        normalized = self.loader.load_normalized_budgets(months)
        return sum_normalized(normalized.values(), list(self.settings.categories))

    def today_guide(
        self,
        month: YearMonth,
        source: Optional[str] = None,
        include_collapsed: bool = False,
        guide_full: bool = False
    ) -> TodayGuide:
        """
        Overall guideline through today versus actual spend.

        Uses today's day for the current month and the last day otherwise.
        """
        dim = month.days_in_month
        day = effective_day(month, self.today)
        visible = self.settings.visible_categories(include_collapsed)
        normalized = self.loader.load_normalized_budgets([month])[month]
        budget = normalized.total(visible)

        rows = filter_by_source(self.loader.load_expense_list([month]), source)
        visible_set = set(visible)
        actual = sum(r.amount for r in rows if r.category in visible_set)
        guide = round_half_up(budget / dim * day * self.settings.factor(guide_full))
        return TodayGuide(day=day, budget=budget, guide=guide, actual=actual, delta=actual - guide)

    def subcategory_guideline_diff(
        self,
        month: YearMonth,
        category: str,
        sub_category: str,
        source: Optional[str] = None,
        guide_full: bool = False
    ) -> GuidelineDiff:
        """
        Prorated subcategory guideline minus actual spend.

        With no subcategory budget the guideline is 0 and the diff is the
        negated actual.
        """
        request = ScopeRequest(months=[month], category=category, sub_category=sub_category, source=source)
        rows = self._scope_rows(self.loader.load_expense_list([month]), request)
        actual = sum(r.amount for r in rows)
        normalized = self.loader.load_normalized_budgets([month])[month]
        budget = normalized.sub_total(category, sub_category)
        if budget <= 0:
            return GuidelineDiff(guideline=0, actual=actual, diff=-actual)

        dim = month.days_in_month
        day = effective_day(month, self.today)
        guideline = round_half_up(budget / dim * day * self.settings.factor(guide_full))
        return GuidelineDiff(guideline=guideline, actual=actual, diff=guideline - actual)

    def category_guideline_total(self, months: Sequence[YearMonth], category: str, guide_full: bool = False) -> int:
        """Sum of each month's own guideline for ``category``."""
        normalized = self.loader.load_normalized_budgets(months)
        return category_guideline_in_range(
            months, normalized, category, self.settings.factor(guide_full), self.today
        )

    def subcategory_guideline_total(
        self,
        months: Sequence[YearMonth],
        category: str,
        sub_category: str,
        guide_full: bool = False
    ) -> int:
        normalized = self.loader.load_normalized_budgets(months)
        return subcategory_guideline_in_range(
            months, normalized, category, sub_category, self.settings.factor(guide_full), self.today
        )

    def stale_registrants(self, month: YearMonth, registrants: Sequence[str]) -> Dict[str, bool]:
        """
        Flag registrants whose latest expense is ``stale_entry_days`` old or more.
        """
        rows = self.loader.load_expense_list([month])
        return {
            name: is_stale(latest_entry_date(rows, name), self.today, self.settings.stale_entry_days)
            for name in registrants
        }
