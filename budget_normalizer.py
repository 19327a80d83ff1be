"""
Budget record normalization.

Budget documents have been written in three shapes over time: a
``categoryBudgets`` map, a legacy ``items`` map with the same meaning, and
per-category ``subBudgets``. This module reads any mix of them into one
``NormalizedBudget`` so the rest of the engine never looks at raw fields.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Union

from exceptions import BudgetError

logger = logging.getLogger(__name__)


def coerce_amount(value: Any) -> float:
    """
    Convert a stored number to float.

    Missing, non-numeric and non-finite values become 0.0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


def coerce_budget_amount(value: Any) -> float:
    """Like :func:`coerce_amount` but negative budgets are treated as unset."""
    return max(coerce_amount(value), 0.0)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded towards +infinity."""
    return int(math.floor(value + 0.5))


def _coerce_amount_map(raw: Any) -> Dict[str, float]:
    if not isinstance(raw, Mapping):
        return {}
    return {str(key): coerce_budget_amount(value) for key, value in raw.items()}


@dataclass(frozen=True)
class BudgetRecord:
    """
    Raw budget document for one month and registrant scope.

    None of the three amount maps is guaranteed to be present or consistent
    with the others.

    Attributes:
        category_budgets: Preferred per-category amounts
        items: Legacy per-category amounts
        sub_budgets: Per-category subcategory amounts
        month: ``YYYY-MM`` the document belongs to, when known
        registrant: Registrant scope key, when known
    """
    category_budgets: Mapping[str, float] = field(default_factory=dict)
    items: Mapping[str, float] = field(default_factory=dict)
    sub_budgets: Mapping[str, Mapping[str, float]] = field(default_factory=dict)
    month: Optional[str] = None
    registrant: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Optional[Mapping[str, Any]]) -> Optional["BudgetRecord"]:
        """
        Build a record from a stored document, coercing every amount.

        Args:
            doc: Document as read from the store, or None

        Returns:
            BudgetRecord, or None when ``doc`` is None

        Raises:
            BudgetError: If ``doc`` is not a mapping
        """
        if doc is None:
            return None
        if not isinstance(doc, Mapping):
            raise BudgetError("Budget document must be a mapping", details={"type": type(doc).__name__})
        raw_subs = doc.get("subBudgets")
        sub_budgets: Dict[str, Dict[str, float]] = {}
        if isinstance(raw_subs, Mapping):
            for category, sub_map in raw_subs.items():
                sub_budgets[str(category)] = _coerce_amount_map(sub_map)
        month = doc.get("month")
        registrant = doc.get("registrant")
        return cls(
            category_budgets=_coerce_amount_map(doc.get("categoryBudgets")),
            items=_coerce_amount_map(doc.get("items")),
            sub_budgets=sub_budgets,
            month=str(month) if month is not None else None,
            registrant=str(registrant) if registrant is not None else None,
        )

    def to_document(self) -> Dict[str, Any]:
        """Serialisable form using the stored field names."""
        doc: Dict[str, Any] = {
            "categoryBudgets": dict(self.category_budgets),
            "items": dict(self.items),
            "subBudgets": {cat: dict(subs) for cat, subs in self.sub_budgets.items()},
        }
        if self.month is not None:
            doc["month"] = self.month
        if self.registrant is not None:
            doc["registrant"] = self.registrant
        return doc


@dataclass(frozen=True)
class NormalizedBudget:
    """
    Canonical budget for one month (or a summed range of months).

    Attributes:
        category_totals: Category name -> reconciled total
        sub_totals: Category name -> subcategory name -> amount
    """
    category_totals: Dict[str, float] = field(default_factory=dict)
    sub_totals: Dict[str, Dict[str, float]] = field(default_factory=dict)

    def category_total(self, category: str) -> float:
        return self.category_totals.get(category, 0.0)

    def sub_total(self, category: str, sub_category: str) -> float:
        return self.sub_totals.get(category, {}).get(sub_category, 0.0)

    def total(self, categories: Optional[Iterable[str]] = None) -> float:
        """Sum of category totals, optionally restricted to ``categories``."""
        if categories is None:
            return sum(self.category_totals.values())
        return sum(self.category_total(c) for c in categories)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "categoryTotals": dict(self.category_totals),
            "subTotals": {cat: dict(subs) for cat, subs in self.sub_totals.items()},
        }


def normalize(
    raw: Union[BudgetRecord, Mapping[str, Any], None],
    categories: Sequence[str]
) -> NormalizedBudget:
    """
    Reconcile a budget record into canonical totals.

    For each category the total is the largest of ``categoryBudgets[c]``,
    ``items[c]`` and the sum of ``subBudgets[c]``, so a category is never
    understated relative to its own itemized subcategories. Subcategory
    amounts are copied unchanged. Categories absent from the record get 0.

    Args:
        raw: BudgetRecord, raw stored document, or None
        categories: Categories to produce totals for

    Returns:
        NormalizedBudget covering exactly ``categories``
    """
    record = raw if isinstance(raw, BudgetRecord) or raw is None else BudgetRecord.from_document(raw)
    if record is None:
        record = BudgetRecord()

    category_totals: Dict[str, float] = {}
    sub_totals: Dict[str, Dict[str, float]] = {}
    for category in categories:
        subs = dict(record.sub_budgets.get(category, {}))
        best = max(
            record.category_budgets.get(category, 0.0),
            record.items.get(category, 0.0),
            sum(subs.values()),
        )
        category_totals[category] = best if math.isfinite(best) else 0.0
        sub_totals[category] = subs

    return NormalizedBudget(category_totals=category_totals, sub_totals=sub_totals)


def sum_normalized(
    budgets: Iterable[NormalizedBudget],
    categories: Sequence[str]
) -> NormalizedBudget:
    """
    Add several months' normalized budgets together.

    Category totals and each subcategory amount are summed independently.
    """
    category_totals: Dict[str, float] = {c: 0.0 for c in categories}
    sub_totals: Dict[str, Dict[str, float]] = {c: {} for c in categories}
    for budget in budgets:
        for category in categories:
            category_totals[category] += budget.category_total(category)
            target = sub_totals[category]
            for sub_category, amount in budget.sub_totals.get(category, {}).items():
                target[sub_category] = target.get(sub_category, 0.0) + amount
    return NormalizedBudget(category_totals=category_totals, sub_totals=sub_totals)
