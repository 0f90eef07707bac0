"""
Spending aggregation for budget periods.

Sums active expense amounts for a user and category over an inclusive
calendar-date range.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Union

from database_ops import DatabaseManager, TransactionKind
from exceptions import AggregationError, DatabaseError, StoreUnavailableError
from period_calculator import parse_date

logger = logging.getLogger(__name__)


class SpendingAggregator:
    """Computes per-category spending totals from the transaction store."""

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize the spending aggregator.

        Args:
            db_manager: DatabaseManager instance acting as the transaction store
        """
        self.db_manager = db_manager

    def sum_active_amount(
        self,
        user_id: str,
        category_id: int,
        period_start: Union[date, str],
        period_end: Union[date, str]
    ) -> Decimal:
        """
        Sum active expenses for (user, category) dated within [period_start, period_end].

        Args:
            user_id: Owner reference
            category_id: Category ID
            period_start: First day of the range (inclusive)
            period_end: Last day of the range (inclusive)

        Returns:
            Total spent; Decimal('0') when no rows match

        Raises:
            StoreUnavailableError: If the store cannot be reached
            AggregationError: If the sum query fails for any other reason
        """
        start = parse_date(period_start)
        end = parse_date(period_end)
        try:
            return self.db_manager.sum_amount(
                user_id,
                category_id,
                start,
                end,
                kind=TransactionKind.EXPENSE,
                active_only=True,
            )
        except StoreUnavailableError:
            raise
        except DatabaseError as e:
            raise AggregationError(
                f"Failed to sum spending for category {category_id}",
                details={
                    "user_id": user_id,
                    "category_id": category_id,
                    "period_start": start,
                    "period_end": end,
                },
                original_error=e
            )
