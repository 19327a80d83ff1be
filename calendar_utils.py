"""
Calendar helpers for month-based budget math.

Provides the ``YearMonth`` value type, strict parsing of ``YYYY-MM`` and
``YYYY-MM-DD`` strings, month ranges, and the day weighting used to give
weekend days a larger share of a weekend-boosted budget.
"""

import calendar
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Iterator, List, Optional, Sequence, TypeVar, Union

from exceptions import CalendarParseError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Saturday and Sunday weigh this many weekdays in a weekend-boosted scope.
WEEKEND_BOOST_RATIO = 20

_YEAR_MONTH_RE = re.compile(r"^\s*(\d{4})-(\d{1,2})\s*$")
_CALENDAR_DATE_RE = re.compile(r"^\s*(\d{4})-(\d{1,2})-(\d{1,2})\s*$")


@dataclass(frozen=True, order=True)
class YearMonth:
    """
    A calendar month such as ``2024-02``.

    Attributes:
        year: Four digit year
        month: Month number (1-12)
    """
    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise CalendarParseError(
                "Month out of range",
                details={"year": self.year, "month": self.month}
            )
        if not 1 <= self.year <= 9999:
            raise CalendarParseError("Year out of range", details={"year": self.year})

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @classmethod
    def parse(cls, text: str) -> "YearMonth":
        """Parse a ``YYYY-MM`` string, raising CalendarParseError when malformed."""
        return parse_year_month(text)

    @classmethod
    def from_date(cls, value: date) -> "YearMonth":
        return cls(value.year, value.month)

    @classmethod
    def from_index(cls, index: int) -> "YearMonth":
        """Inverse of :attr:`index`."""
        return cls(index // 12, index % 12 + 1)

    @property
    def index(self) -> int:
        """Months elapsed since year 0, used for range arithmetic."""
        return self.year * 12 + (self.month - 1)

    @property
    def days_in_month(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, self.days_in_month)

    @property
    def next_month_start(self) -> date:
        return self.shift(1).first_day

    def shift(self, delta: int) -> "YearMonth":
        """Return the month ``delta`` months away (negative moves backwards)."""
        return YearMonth.from_index(self.index + delta)

    def dates(self) -> List[date]:
        """Every calendar day of the month, in order."""
        return [date(self.year, self.month, day) for day in range(1, self.days_in_month + 1)]

    def contains(self, value: date) -> bool:
        return value.year == self.year and value.month == self.month


EPOCH_YEAR_MONTH = YearMonth(1970, 1)


def parse_year_month(text: Union[str, "YearMonth"]) -> YearMonth:
    """
    Parse a ``YYYY-MM`` string into a YearMonth.

    Args:
        text: Year-month string (single digit months are accepted)

    Returns:
        Parsed YearMonth

    Raises:
        CalendarParseError: If the value is not a valid year-month
    """
    if isinstance(text, YearMonth):
        return text
    match = _YEAR_MONTH_RE.match(str(text or ""))
    if not match:
        raise CalendarParseError("Invalid year-month", details={"value": text})
    return YearMonth(int(match.group(1)), int(match.group(2)))


def parse_calendar_date(text: Union[str, date]) -> date:
    """
    Parse a ``YYYY-MM-DD`` string into a date.

    Raises:
        CalendarParseError: If the value is not a real calendar day
    """
    if isinstance(text, date):
        return text
    match = _CALENDAR_DATE_RE.match(str(text or ""))
    if not match:
        raise CalendarParseError("Invalid calendar date", details={"value": text})
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError as e:
        raise CalendarParseError(
            "Invalid calendar date",
            details={"value": text},
            original_error=e
        ) from e


def year_month_or_default(
    text: Union[str, YearMonth],
    default: YearMonth = EPOCH_YEAR_MONTH
) -> YearMonth:
    """
    Parse a year-month, substituting ``default`` when it is malformed.

    This is the explicit fallback for callers that must keep going over a
    whole range even when one stored record is corrupt.
    """
    try:
        return parse_year_month(text)
    except CalendarParseError:
        logger.warning(f"Malformed year-month {text!r}; substituting {default}")
        return default


def days_in_month(year_month: Union[str, YearMonth]) -> int:
    """Number of days in the month (proleptic Gregorian)."""
    return parse_year_month(year_month).days_in_month


def month_dates(year_month: Union[str, YearMonth]) -> List[date]:
    return parse_year_month(year_month).dates()


def months_between(
    start: Union[str, YearMonth],
    end: Union[str, YearMonth]
) -> List[YearMonth]:
    """
    Inclusive list of months between two endpoints.

    The result is ascending whichever order the endpoints are given in.
    """
    a = parse_year_month(start).index
    b = parse_year_month(end).index
    return [YearMonth.from_index(i) for i in range(min(a, b), max(a, b) + 1)]


def is_weekend(value: date) -> bool:
    """Saturday or Sunday."""
    return value.weekday() >= 5


def day_weight(value: date, boosted: bool, ratio: int = WEEKEND_BOOST_RATIO) -> int:
    """
    Weight of a single day when spreading a monthly budget.

    Args:
        value: Calendar day
        boosted: Whether the scope uses weekend boosting
        ratio: Weight given to Saturday/Sunday when boosted

    Returns:
        1 for every day when not boosted; ``ratio`` for weekend days otherwise
    """
    if boosted and is_weekend(value):
        return ratio
    return 1


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def days_since(value: date, today: date) -> int:
    return (today - value).days


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def today_or(value: Optional[date] = None) -> date:
    return value if value is not None else date.today()

