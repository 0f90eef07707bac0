"""
Analytics module for income and expense summaries.

This module provides the aggregated read views of a user's transactions:
monthly totals, amounts per category, top categories and overall balance.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd
from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError

from database_ops import Category, DatabaseManager, Transaction, TransactionKind
from exceptions import AnalyticsError

logger = logging.getLogger(__name__)

DEFAULT_TOP_CATEGORIES = 5

_TRANSACTION_COLUMNS = ["date", "amount", "category_id", "description"]


class AnalyticsEngine:
    """
    Aggregates a user's active transactions into summary views.

    Row-level loading is done in SQL; grouping is done with pandas.
    """

    def __init__(self, db_manager: DatabaseManager, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the analytics engine.

        Args:
            db_manager: Database manager instance
            config: Optional configuration dictionary (uses the 'analytics' section)
        """
        self.db_manager = db_manager
        analytics_cfg = (config or {}).get("analytics", {}) or {}
        self.top_categories_limit = int(analytics_cfg.get("top_categories_limit", DEFAULT_TOP_CATEGORIES))
        logger.info("Analytics engine initialized")

    def _load_transactions(
        self,
        user_id: str,
        kind: TransactionKind,
        year: Optional[int] = None
    ) -> pd.DataFrame:
        """
        Load active transactions of one kind into a DataFrame.

        Raises:
            AnalyticsError: If the query fails
        """
        session = self.db_manager.get_session()
        try:
            query = session.query(
                Transaction.date,
                Transaction.amount,
                Transaction.category_id,
                Category.description,
            ).join(Category, Transaction.category_id == Category.id).filter(
                Transaction.user_id == user_id,
                Transaction.kind == kind,
                Transaction.active.is_(True),
            )
            if year is not None:
                query = query.filter(
                    Transaction.date >= date(year, 1, 1),
                    Transaction.date <= date(year, 12, 31),
                )
            rows = query.all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load {kind.value} transactions for user {user_id}: {e}")
            raise AnalyticsError(
                f"Failed to load {kind.value} transactions",
                details={"user_id": user_id, "year": year},
                original_error=e
            )
        finally:
            session.close()

        df = pd.DataFrame([tuple(row) for row in rows], columns=_TRANSACTION_COLUMNS)
        df["amount"] = df["amount"].astype(float)
        return df

    def get_monthly_totals(
        self,
        user_id: str,
        year: Optional[int] = None,
        kind: TransactionKind = TransactionKind.EXPENSE
    ) -> List[float]:
        """
        Get per-month totals for a year.

        Args:
            user_id: Owner reference
            year: Calendar year (defaults to the current year)
            kind: Expense or income

        Returns:
            Twelve totals, January first; months without transactions are 0.0
        """
        year = year or date.today().year
        df = self._load_transactions(user_id, kind, year)
        if df.empty:
            return [0.0] * 12

        months = pd.to_datetime(df["date"]).dt.month
        totals = df.groupby(months)["amount"].sum().reindex(range(1, 13), fill_value=0.0)
        return [round(float(value), 2) for value in totals.tolist()]

    def get_amount_by_category(self, user_id: str, year: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Get total expenses per category for a year, largest first.

        Returns:
            List of dicts with category_id, description and total_amount
        """
        year = year or date.today().year
        df = self._load_transactions(user_id, TransactionKind.EXPENSE, year)
        if df.empty:
            return []

        grouped = (
            df.groupby(["category_id", "description"], as_index=False)["amount"]
            .sum()
            .rename(columns={"amount": "total_amount"})
            .sort_values(["total_amount", "description"], ascending=[False, True], kind="mergesort")
        )
        grouped["total_amount"] = grouped["total_amount"].round(2)
        return [
            {
                "category_id": int(row.category_id),
                "description": row.description,
                "total_amount": float(row.total_amount),
            }
            for row in grouped.itertuples(index=False)
        ]

    def get_top_categories(
        self,
        user_id: str,
        year: Optional[int] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Get the categories with the largest expense totals for a year."""
        limit = limit if limit is not None else self.top_categories_limit
        return self.get_amount_by_category(user_id, year)[:limit]

    def get_balance(self, user_id: str) -> Dict[str, float]:
        """
        Get total active income, total active expenses and their difference.

        Raises:
            AnalyticsError: If the query fails
        """
        session = self.db_manager.get_session()
        try:
            income_total, expense_total = session.query(
                func.coalesce(func.sum(
                    case((Transaction.kind == TransactionKind.INCOME, Transaction.amount), else_=0)
                ), 0),
                func.coalesce(func.sum(
                    case((Transaction.kind == TransactionKind.EXPENSE, Transaction.amount), else_=0)
                ), 0),
            ).filter(
                Transaction.user_id == user_id,
                Transaction.active.is_(True),
            ).one()
        except SQLAlchemyError as e:
            logger.error(f"Failed to compute balance for user {user_id}: {e}")
            raise AnalyticsError(
                "Failed to compute balance",
                details={"user_id": user_id},
                original_error=e
            )
        finally:
            session.close()

        total_income = round(float(income_total or 0), 2)
        total_expense = round(float(expense_total or 0), 2)
        return {
            "total_income": total_income,
            "total_expense": total_expense,
            "balance": round(total_income - total_expense, 2),
        }
