"""
Unit tests for the spending aggregator.
"""

from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest

from database_ops import DatabaseManager, TransactionKind
from exceptions import AggregationError, DatabaseError, StoreUnavailableError
from spending import SpendingAggregator


class TestSumActiveAmount:
    """Tests for SpendingAggregator.sum_active_amount."""

    def test_inclusive_range_over_real_store(self, db_manager, add_expense):
        category_id = db_manager.add_category("Groceries").id
        add_expense("u1", category_id, "10.50", date(2024, 1, 31))
        add_expense("u1", category_id, "20.25", date(2024, 2, 1))
        add_expense("u1", category_id, "5", date(2024, 2, 29))
        add_expense("u1", category_id, "100", date(2024, 3, 1))

        total = SpendingAggregator(db_manager).sum_active_amount("u1", category_id, "2024-02-01", "2024-02-29")

        assert total == Decimal("25.25")

    def test_returns_zero_when_nothing_matches(self, db_manager):
        category_id = db_manager.add_category("Travel").id

        total = SpendingAggregator(db_manager).sum_active_amount("u1", category_id, date(2024, 1, 1), date(2024, 1, 31))

        assert total == Decimal("0")
        assert isinstance(total, Decimal)

    def test_queries_active_expenses_only(self):
        db = Mock(spec=DatabaseManager)
        db.sum_amount.return_value = Decimal("7")

        SpendingAggregator(db).sum_active_amount("u1", 4, date(2024, 1, 1), date(2024, 1, 7))

        db.sum_amount.assert_called_once_with(
            "u1", 4, date(2024, 1, 1), date(2024, 1, 7),
            kind=TransactionKind.EXPENSE, active_only=True
        )

    def test_database_error_becomes_aggregation_error(self):
        db = Mock(spec=DatabaseManager)
        cause = DatabaseError("bad query")
        db.sum_amount.side_effect = cause

        with pytest.raises(AggregationError) as exc_info:
            SpendingAggregator(db).sum_active_amount("u1", 4, date(2024, 1, 1), date(2024, 1, 7))

        assert exc_info.value.original_error is cause
        assert exc_info.value.details["category_id"] == 4

    def test_store_unavailable_propagates_unchanged(self):
        db = Mock(spec=DatabaseManager)
        db.sum_amount.side_effect = StoreUnavailableError("down")

        with pytest.raises(StoreUnavailableError):
            SpendingAggregator(db).sum_active_amount("u1", 4, date(2024, 1, 1), date(2024, 1, 7))
