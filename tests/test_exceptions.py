"""
Unit tests for the unified exception hierarchy.
"""

import pytest

from exceptions import (
    AggregationError,
    AnalyticsError,
    BudgetError,
    BudgetNotFoundError,
    BudgetValidationError,
    ConfigError,
    DatabaseError,
    DuplicateActiveBudgetError,
    FinanceAppError,
    InvalidPeriodTypeError,
    StoreUnavailableError,
)


class TestFinanceAppError:
    """Test base FinanceAppError class."""

    def test_basic_exception_creation(self):
        error = FinanceAppError("Test error message")
        assert str(error) == "Test error message"
        assert error.details == {}
        assert error.original_error is None

    def test_exception_with_details(self):
        error = FinanceAppError("Test error", details={"key1": "value1", "key2": 123})
        assert "key1=value1" in str(error)
        assert "key2=123" in str(error)

    def test_exception_with_original_error(self):
        original = ValueError("Original error")
        error = FinanceAppError("Wrapped error", original_error=original)
        assert error.original_error is original


class TestExceptionHierarchy:
    """Test specific exception subclasses."""

    @pytest.mark.parametrize("exc_type, parent", [
        (ConfigError, FinanceAppError),
        (DatabaseError, FinanceAppError),
        (StoreUnavailableError, DatabaseError),
        (BudgetError, FinanceAppError),
        (InvalidPeriodTypeError, BudgetError),
        (DuplicateActiveBudgetError, BudgetError),
        (BudgetNotFoundError, BudgetError),
        (BudgetValidationError, BudgetError),
        (AggregationError, FinanceAppError),
        (AnalyticsError, FinanceAppError),
    ])
    def test_subclass_relationships(self, exc_type, parent):
        assert issubclass(exc_type, parent)

    def test_aggregation_error_is_not_a_database_error(self):
        assert not issubclass(AggregationError, DatabaseError)

    def test_catch_all_with_base(self):
        with pytest.raises(FinanceAppError):
            raise DuplicateActiveBudgetError("exists", details={"category_id": 3})
