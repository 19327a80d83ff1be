"""
Actual-spend series and scope filtering.

Turns expense records into the daily or monthly actual series plotted
against a guideline, and applies the scope filters (payment source,
category, subcategory) used by guideline views.
"""

import logging
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from calendar_utils import YearMonth, days_since
from database_ops import ExpenseRecord
from guideline import GuidelinePoint

logger = logging.getLogger(__name__)

FRAME_COLUMNS = ["id", "registrant", "date", "month", "amount", "category", "sub_category", "source"]


def expenses_frame(rows: Iterable[ExpenseRecord]) -> pd.DataFrame:
    """
    DataFrame of expenses with a parsed ``day`` column.

    Rows whose date cannot be parsed are kept with ``day`` set to None.
    """
    df = pd.DataFrame(
        [
            {
                "id": r.id,
                "registrant": r.registrant,
                "date": r.date,
                "month": r.month,
                "amount": r.amount,
                "category": r.category,
                "sub_category": r.sub_category.strip(),
                "source": r.source,
            }
            for r in rows
        ],
        columns=FRAME_COLUMNS,
    )
    parsed = pd.to_datetime(df["date"], format="%Y-%m-%d", errors="coerce")
    df["day"] = [ts.date() if not pd.isna(ts) else None for ts in parsed]
    df["amount"] = pd.to_numeric(df["amount"], errors="coerce").fillna(0)
    return df


def filter_by_source(rows: Sequence[ExpenseRecord], source_keyword: Optional[str]) -> List[ExpenseRecord]:
    """Expenses whose payment source contains ``source_keyword`` (all when None)."""
    if not source_keyword:
        return list(rows)
    return [r for r in rows if source_keyword in (r.source or "")]


def exclude_categories(rows: Sequence[ExpenseRecord], categories: Iterable[str]) -> List[ExpenseRecord]:
    excluded = set(categories)
    return [r for r in rows if r.category not in excluded]


def official_subcategories(
    category: str,
    subcategories: Mapping[str, Sequence[str]],
    free_label: str
) -> List[str]:
    """Official subcategories of ``category`` without the free-input bucket."""
    return [s.strip() for s in subcategories.get(category, ()) if s != free_label]


def filter_by_category_sub(
    rows: Sequence[ExpenseRecord],
    category: Optional[str],
    sub_category: Optional[str],
    subcategories: Mapping[str, Sequence[str]],
    free_label: str,
    registrant_split_categories: Iterable[str] = ()
) -> List[ExpenseRecord]:
    """
    Restrict expenses to a category and optionally one of its subcategories.

    Subcategories outside the official list are grouped under ``free_label``.
    For registrant-split categories the subcategory names a registrant and
    matches expenses whose registrant contains it.

    Args:
        rows: Expenses to filter
        category: Category to keep (all categories when None)
        sub_category: Subcategory to keep (whole category when None)
        subcategories: Official subcategories per category
        free_label: Label of the free-input bucket
        registrant_split_categories: Categories broken down by registrant

    Returns:
        Matching expenses in input order
    """
    out = list(rows)
    if category:
        out = [r for r in out if r.category == category]
    if not category or not sub_category:
        return out

    if category in set(registrant_split_categories):
        return [r for r in out if sub_category in (r.registrant or "")]

    official = official_subcategories(category, subcategories, free_label)
    if sub_category == free_label:
        return [r for r in out if r.sub_category.strip() not in official]
    return [r for r in out if r.sub_category.strip() == sub_category]


def daily_actual_series(
    rows: Sequence[ExpenseRecord],
    dates: Sequence[date],
    cumulative: bool = False
) -> List[GuidelinePoint]:
    """
    Actual spend per calendar day, zero-filled.

    Args:
        rows: Expenses already filtered to the scope
        dates: Days to report, in order
        cumulative: Return a running total instead of per-day amounts

    Returns:
        One point per entry of ``dates``
    """
    df = expenses_frame(rows)
    unplaced = int(df["day"].isna().sum())
    if unplaced:
        logger.warning(f"{unplaced} expense(s) with malformed dates left off the daily series")
    df = df[df["day"].notna()]
    totals = df.groupby("day")["amount"].sum() if not df.empty else pd.Series(dtype=float)
    values = totals.reindex(list(dates), fill_value=0)
    if cumulative:
        values = values.cumsum()
    return [GuidelinePoint(d, int(v)) for d, v in zip(dates, values.tolist())]


def monthly_actual_series(
    rows: Sequence[ExpenseRecord],
    months: Sequence[YearMonth],
    cumulative: bool = False
) -> List[GuidelinePoint]:
    """Actual spend per month keyed by the stored ``month`` field, zero-filled."""
    df = expenses_frame(rows)
    totals = df.groupby("month")["amount"].sum() if not df.empty else pd.Series(dtype=float)
    values = totals.reindex([str(m) for m in months], fill_value=0)
    if cumulative:
        values = values.cumsum()
    return [GuidelinePoint(m, int(v)) for m, v in zip(months, values.tolist())]


def first_day_actual(rows: Sequence[ExpenseRecord], month: YearMonth) -> int:
    """Total spend on the first day of ``month``."""
    first = month.first_day
    return sum(r.amount for r in rows if r.calendar_date == first)


def category_actuals(rows: Sequence[ExpenseRecord], categories: Sequence[str]) -> Dict[str, int]:
    """Spend per category, including zero entries for every listed category."""
    df = expenses_frame(rows)
    totals = df.groupby("category")["amount"].sum() if not df.empty else pd.Series(dtype=float)
    return {c: int(totals.get(c, 0)) for c in categories}


def subcategory_actuals(
    rows: Sequence[ExpenseRecord],
    category: str,
    subcategories: Mapping[str, Sequence[str]],
    free_label: str,
    registrant_split_categories: Iterable[str] = (),
    registrants: Sequence[str] = ()
) -> Dict[str, int]:
    """
    Spend per subcategory of ``category``.

    Official subcategories are always listed; the free-input bucket only when
    it has spend. Registrant-split categories are keyed by ``registrants``.
    """
    in_category = [r for r in rows if r.category == category]

    if category in set(registrant_split_categories):
        return {
            name: sum(r.amount for r in in_category if name in (r.registrant or ""))
            for name in registrants
        }

    official = official_subcategories(category, subcategories, free_label)
    totals: Dict[str, int] = {name: 0 for name in official}
    free_total = 0
    for r in in_category:
        key = r.sub_category.strip()
        if key in totals:
            totals[key] += r.amount
        else:
            free_total += r.amount
    if free_total != 0:
        totals[free_label] = free_total
    return totals


def latest_entry_date(rows: Sequence[ExpenseRecord], registrant: Optional[str] = None) -> Optional[date]:
    """Most recent expense date, optionally for one registrant."""
    dates = [
        r.calendar_date
        for r in rows
        if r.calendar_date is not None and (registrant is None or r.registrant == registrant)
    ]
    return max(dates) if dates else None


def is_stale(last_entry: Optional[date], today: date, threshold_days: int) -> bool:
    """
    Whether entries are overdue.

    True when there is no entry at all or the last one is at least
    ``threshold_days`` old.
    """
    if last_entry is None:
        return True
    return days_since(last_entry, today) >= threshold_days
