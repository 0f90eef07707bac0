"""
Unified exception hierarchy for the budget tracker.

This module defines the exception hierarchy with FinanceAppError as the
base exception, allowing callers to handle every domain failure through a
single type while still distinguishing business-rule rejections from
infrastructure faults.
"""

from typing import Optional


class FinanceAppError(Exception):
    """
    Base exception class for all budget tracker errors.

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
    """Raised when database operations fail."""
    pass


class StoreUnavailableError(DatabaseError):
    """Raised when the backing store cannot be reached at all."""
    pass


class BudgetError(FinanceAppError):
    """Raised when budget management operations fail."""
    pass


class InvalidPeriodTypeError(BudgetError):
    """Raised when a period type outside weekly/biweekly/monthly is used."""
    pass


class DuplicateActiveBudgetError(BudgetError):
    """Raised when a user already has an active budget for a category."""
    pass


class BudgetNotFoundError(BudgetError):
    """Raised when a budget is missing or already soft-deleted."""
    pass


class BudgetValidationError(BudgetError):
    """Raised when budget input values are out of range or malformed."""
    pass


class AggregationError(FinanceAppError):
    """Raised when summing transaction amounts fails."""
    pass


class AnalyticsError(FinanceAppError):
    """Raised when analytics operations fail."""
    pass
