"""
Unit tests for analytics module.

Tests monthly totals, category breakdowns and balance.
"""

from datetime import date
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from analytics import AnalyticsEngine
from database_ops import DatabaseManager, TransactionKind
from exceptions import AnalyticsError


@pytest.fixture
def seeded(db_manager, add_expense):
    """Seed two users' incomes and expenses across 2024."""
    ids = {name: db_manager.add_category(name).id for name in
           ("Rent", "Groceries", "Dining", "Fuel", "Books", "Games", "Salary")}
    add_expense("u1", ids["Rent"], "1000", date(2024, 1, 1))
    add_expense("u1", ids["Rent"], "1000", date(2024, 3, 1))
    add_expense("u1", ids["Groceries"], "150.25", date(2024, 1, 15))
    add_expense("u1", ids["Dining"], "80", date(2024, 3, 20))
    add_expense("u1", ids["Fuel"], "60", date(2024, 12, 31))
    add_expense("u1", ids["Books"], "40", date(2024, 6, 1))
    add_expense("u1", ids["Games"], "20", date(2024, 6, 2))
    add_expense("u1", ids["Dining"], "999", date(2024, 3, 21), active=False)
    add_expense("u1", ids["Dining"], "500", date(2023, 12, 31))
    add_expense("u1", ids["Salary"], "3000", date(2024, 1, 31), kind=TransactionKind.INCOME)
    add_expense("u2", ids["Rent"], "700", date(2024, 1, 1))
    return ids


@pytest.fixture
def analytics_engine(db_manager):
    return AnalyticsEngine(db_manager)


class TestMonthlyTotals:
    """Tests for get_monthly_totals."""

    def test_expense_months_are_filled(self, analytics_engine, seeded):
        totals = analytics_engine.get_monthly_totals("u1", 2024)

        assert len(totals) == 12
        assert totals[0] == pytest.approx(1150.25)
        assert totals[1] == 0.0
        assert totals[2] == pytest.approx(1080.0)
        assert totals[5] == pytest.approx(60.0)
        assert totals[11] == pytest.approx(60.0)

    def test_income_months(self, analytics_engine, seeded):
        totals = analytics_engine.get_monthly_totals("u1", 2024, TransactionKind.INCOME)

        assert totals[0] == pytest.approx(3000.0)
        assert sum(totals) == pytest.approx(3000.0)

    def test_empty_year(self, analytics_engine, seeded):
        assert analytics_engine.get_monthly_totals("u1", 2019) == [0.0] * 12


class TestCategoryBreakdown:
    """Tests for get_amount_by_category and get_top_categories."""

    def test_amount_by_category_sorted_desc(self, analytics_engine, seeded):
        breakdown = analytics_engine.get_amount_by_category("u1", 2024)

        assert [row["description"] for row in breakdown] == [
            "Rent", "Groceries", "Dining", "Fuel", "Books", "Games"
        ]
        assert breakdown[0]["total_amount"] == pytest.approx(2000.0)
        assert breakdown[0]["category_id"] == seeded["Rent"]

    def test_top_categories_defaults_to_five(self, analytics_engine, seeded):
        top = analytics_engine.get_top_categories("u1", 2024)

        assert len(top) == 5
        assert top[-1]["description"] == "Books"

    def test_top_categories_limit_from_config(self, db_manager, seeded):
        engine = AnalyticsEngine(db_manager, config={"analytics": {"top_categories_limit": 2}})

        assert [row["description"] for row in engine.get_top_categories("u1", 2024)] == ["Rent", "Groceries"]

    def test_no_expenses(self, analytics_engine, seeded):
        assert analytics_engine.get_amount_by_category("nobody", 2024) == []


class TestBalance:
    """Tests for get_balance."""

    def test_balance_counts_active_rows_all_years(self, analytics_engine, seeded):
        balance = analytics_engine.get_balance("u1")

        assert balance["total_income"] == pytest.approx(3000.0)
        assert balance["total_expense"] == pytest.approx(2850.25)
        assert balance["balance"] == pytest.approx(149.75)

    def test_balance_for_unknown_user(self, analytics_engine, seeded):
        assert analytics_engine.get_balance("nobody") == {
            "total_income": 0.0,
            "total_expense": 0.0,
            "balance": 0.0,
        }

    def test_query_failure_raises_analytics_error(self):
        db = Mock(spec=DatabaseManager)
        session = Mock()
        session.query.side_effect = OperationalError("SELECT", {}, Exception("down"))
        db.get_session.return_value = session

        with pytest.raises(AnalyticsError):
            AnalyticsEngine(db).get_balance("u1")
        session.close.assert_called_once()
