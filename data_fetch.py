"""
Cached data loading for guideline views.

Fetches expense, income and budget documents through a ReadThroughCache.
Expenses are cached per month; months that are missing or stale are
requested from the store in batches no larger than the store's "IN" limit
and merged back into per-month lists.
"""

import logging
from typing import Dict, List, Optional, Sequence

from budget_normalizer import BudgetRecord, NormalizedBudget, normalize
from cache import ReadThroughCache
from calendar_utils import YearMonth, chunked, parse_year_month
from config_manager import EngineSettings
from database_ops import DocumentStore, ExpenseRecord, IncomeRecord
from exceptions import CalendarParseError

logger = logging.getLogger(__name__)

EXPENSES_PREFIX = "expenses:"
INCOMES_PREFIX = "incomes:"
BUDGET_PREFIX = "budget:"


def expenses_key(month: YearMonth) -> str:
    return f"{EXPENSES_PREFIX}{month}"


def incomes_key(start: str, end_exclusive: str) -> str:
    return f"{INCOMES_PREFIX}{start}__{end_exclusive}"


def budget_key(month: YearMonth, scope_key: str) -> str:
    return f"{BUDGET_PREFIX}{month}:{scope_key}"


class BudgetDataLoader:
    """
    Loads the raw records a guideline view needs.

    Owns no state besides the injected cache, so several loaders may share
    one cache instance.
    """

    def __init__(
        self,
        store: DocumentStore,
        cache: Optional[ReadThroughCache] = None,
        settings: Optional[EngineSettings] = None
    ):
        """
        Initialize the loader.

        Args:
            store: Document store to read from
            cache: Cache instance (a private one is created when None)
            settings: Engine settings (TTL, batch size, budget scope)
        """
        self.store = store
        self.settings = settings or EngineSettings.from_config()
        self.cache = cache or ReadThroughCache(default_ttl_ms=self.settings.ttl_ms)

    @property
    def batch_size(self) -> int:
        return max(1, min(self.settings.batch_size, self.store.max_in_values))

    def load_expenses(self, months: Sequence[YearMonth]) -> Dict[YearMonth, List[ExpenseRecord]]:
        """
        Expenses for each requested month.

        Args:
            months: Months to load

        Returns:
            Mapping of every requested month to its expenses (possibly empty)

        Raises:
            DatabaseError: If a store query fails; months fetched in earlier
                batches of the same call are not cached either
        """
        ttl = self.settings.ttl_ms
        result: Dict[YearMonth, List[ExpenseRecord]] = {}
        missing: List[YearMonth] = []

        for month in months:
            entry = self.cache.peek(expenses_key(month), ttl)
            if entry is not None:
                result[month] = entry.value
            else:
                missing.append(month)

        if not missing:
            return result

        fetched: Dict[YearMonth, List[ExpenseRecord]] = {month: [] for month in missing}
        for part in chunked(missing, self.batch_size):
            rows = self.store.fetch_expenses_by_months([str(m) for m in part])
            logger.info(f"Fetched {len(rows)} expenses for {len(part)} month(s)")
            for row in rows:
                try:
                    row_month = parse_year_month(row.month)
                except CalendarParseError:
                    logger.warning(f"Skipping expense {row.id} with malformed month {row.month!r}")
                    continue
                if row_month not in fetched:
                    logger.debug(f"Ignoring expense {row.id} for unrequested month {row_month}")
                    continue
                fetched[row_month].append(row)

        for month, rows in fetched.items():
            self.cache.put(expenses_key(month), rows)
            result[month] = rows

        return {month: result[month] for month in months}

    def load_expense_list(self, months: Sequence[YearMonth]) -> List[ExpenseRecord]:
        """All expenses of ``months`` flattened in month order."""
        by_month = self.load_expenses(months)
        return [row for month in months for row in by_month.get(month, [])]

    def load_incomes(self, months: Sequence[YearMonth]) -> List[IncomeRecord]:
        """
        Positive incomes between the first month's first day and the day after the last month.
        """
        if not months:
            return []
        ordered = sorted(months)
        start = ordered[0].first_day.isoformat()
        end_exclusive = ordered[-1].next_month_start.isoformat()

        def fetch() -> List[IncomeRecord]:
            rows = self.store.fetch_incomes_by_date_range(start, end_exclusive)
            return [row for row in rows if row.amount > 0]

        return self.cache.get(incomes_key(start, end_exclusive), self.settings.ttl_ms, fetch)

    def load_budget(self, month: YearMonth, scope_key: Optional[str] = None) -> Optional[BudgetRecord]:
        scope = scope_key or self.settings.budget_scope_key
        return self.cache.get(
            budget_key(month, scope),
            self.settings.ttl_ms,
            lambda: self.store.fetch_budget_doc(str(month), scope),
        )

    def load_normalized_budgets(
        self,
        months: Sequence[YearMonth],
        categories: Optional[Sequence[str]] = None
    ) -> Dict[YearMonth, NormalizedBudget]:
        """Normalized budget of every month (zero totals where no document exists)."""
        categories = list(categories) if categories is not None else list(self.settings.categories)
        return {month: normalize(self.load_budget(month), categories) for month in months}

    def invalidate_month(self, month: YearMonth) -> None:
        """Forget cached expenses and budget of ``month`` after an edit."""
        self.cache.invalidate(expenses_key(month))
        self.cache.invalidate_prefix(f"{BUDGET_PREFIX}{month}:")

    def invalidate_incomes(self) -> None:
        self.cache.invalidate_prefix(INCOMES_PREFIX)

    def force_reload(self, months: Sequence[YearMonth]) -> None:
        """Drop every cached entry the given months depend on."""
        for month in months:
            self.invalidate_month(month)
        self.invalidate_incomes()
