"""
Unified exception hierarchy for the household budget engine.

This module defines the exception hierarchy with FinanceAppError as the
base exception, so callers (CLI, UI layers) can catch one type and still
get a consistent message and context for every failure raised here.
"""

from typing import Optional


class FinanceAppError(Exception):
    """
    Base exception class for all budget engine errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
        original_error: Optional original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ) -> None:
        """
        Initialize FinanceAppError.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
            original_error: Optional original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} ({detail_str})"
        return msg


class ConfigError(FinanceAppError):
    """Raised when configuration loading or validation fails."""
    pass


class DatabaseError(FinanceAppError):
    """Raised when the document store cannot be read or written."""
    pass


class CalendarParseError(FinanceAppError):
    """Raised when a year-month or calendar date string cannot be parsed."""
    pass


class BudgetError(FinanceAppError):
    """Raised when a budget record cannot be interpreted."""
    pass


class GuidelineError(FinanceAppError):
    """Raised when guideline or forecast parameters are invalid."""
    pass
