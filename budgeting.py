"""
Budgeting module for periodic per-category budgets.

This module owns the budget period lifecycle: every read of budgets goes
through BudgetManager, which detects elapsed periods, persists the rolled
forward period, and only then attaches spending totals and alert flags.
It also provides the create, update and soft-delete operations.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple, Union

from database_ops import Budget, DatabaseManager
from exceptions import (
    BudgetError,
    BudgetNotFoundError,
    BudgetValidationError,
    DuplicateActiveBudgetError,
    FinanceAppError,
    InvalidPeriodTypeError,
    StoreUnavailableError,
)
from period_calculator import (
    Period,
    PeriodType,
    coerce_period_type,
    end_date_of,
    format_date,
    iter_periods_until,
    parse_date,
)
from spending import SpendingAggregator

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_NEAR_LIMIT_PCT = Decimal("80")
_FULL_PCT = Decimal("100")

NOT_FOUND_MESSAGE = "Budget not found or already deleted"

_RESULT_CODES = {
    BudgetNotFoundError: "not_found",
    DuplicateActiveBudgetError: "duplicate_active_budget",
    InvalidPeriodTypeError: "invalid_period_type",
    BudgetValidationError: "validation_error",
}


@dataclass
class BudgetWithSpending:
    """
    A budget in its current period together with its derived spending metrics.

    Attributes:
        budget_id: Budget UUID
        user_id: Owner reference
        category_id: Category ID
        category_name: Category description
        limit_amount: Spending ceiling for one period
        period_type: Period type of the budget
        start_date: First day of the current period
        end_date: Last day of the current period
        total_spent: Active expenses within the period
        remaining: limit_amount - total_spent (may be negative)
        percent_used: total_spent / limit_amount * 100
        is_over_budget: total_spent > limit_amount
        is_near_limit: near-limit threshold <= percent_used < 100
        rolled_over: True if this read advanced the stored period
    """
    budget_id: str
    user_id: str
    category_id: int
    category_name: Optional[str]
    limit_amount: Decimal
    period_type: PeriodType
    start_date: date
    end_date: date
    total_spent: Decimal
    remaining: Decimal
    percent_used: Decimal
    is_over_budget: bool
    is_near_limit: bool
    rolled_over: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Return a plain dictionary with dates as YYYY-MM-DD strings."""
        return {
            "id": self.budget_id,
            "user_id": self.user_id,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "limit_amount": float(self.limit_amount),
            "period_type": self.period_type.value,
            "start_date": format_date(self.start_date),
            "end_date": format_date(self.end_date),
            "total_spent": float(self.total_spent),
            "remaining": float(self.remaining),
            "percent_used": float(self.percent_used),
            "is_over_budget": self.is_over_budget,
            "is_near_limit": self.is_near_limit,
        }


@dataclass
class BudgetFailure:
    """A budget that could not be rolled over or aggregated during a batch read."""
    budget_id: str
    category_id: int
    category_name: Optional[str]
    error: FinanceAppError

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass
class BudgetListing:
    """Result of a batch budget read: computed budgets plus isolated failures."""
    budgets: List[BudgetWithSpending] = field(default_factory=list)
    failures: List[BudgetFailure] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


@dataclass
class BudgetAlerts:
    """Budgets that are over their limit or close to it."""
    total_alerts: int
    over_budget: List[BudgetWithSpending]
    near_limit: List[BudgetWithSpending]
    failures: List[BudgetFailure] = field(default_factory=list)


@dataclass
class BudgetUpdate:
    """
    Partial update for a budget.

    Only fields that are not None are applied.
    """
    limit_amount: Optional[Union[Decimal, float, str]] = None
    period_type: Optional[Union[PeriodType, str]] = None
    start_date: Optional[Union[date, str]] = None
    end_date: Optional[Union[date, str]] = None

    def provided_fields(self) -> Dict[str, Any]:
        """Return the fields that were explicitly set."""
        candidates = {
            "limit_amount": self.limit_amount,
            "period_type": self.period_type,
            "start_date": self.start_date,
            "end_date": self.end_date,
        }
        return {name: value for name, value in candidates.items() if value is not None}


@dataclass
class BudgetResult:
    """
    Structured outcome of a budget mutation.

    Attributes:
        success: Whether the mutation was applied
        message: Human-readable outcome
        code: Machine-readable failure code (None on success)
        budget: The stored budget after the mutation, when available
    """
    success: bool
    message: str
    code: Optional[str] = None
    budget: Optional[Budget] = None

    @classmethod
    def from_error(cls, error: BudgetError) -> "BudgetResult":
        code = next(
            (value for exc_type, value in _RESULT_CODES.items() if isinstance(error, exc_type)),
            "budget_error"
        )
        return cls(success=False, message=error.message, code=code)


def compute_spending_metrics(
    limit_amount: Decimal,
    total_spent: Decimal,
    near_limit_pct: Decimal = DEFAULT_NEAR_LIMIT_PCT
) -> Tuple[Decimal, Decimal, bool, bool]:
    """
    Derive remaining amount, percent used and alert flags.

    Args:
        limit_amount: Budget limit for the period
        total_spent: Amount spent in the period
        near_limit_pct: Lower bound (inclusive) of the near-limit band

    Returns:
        Tuple of (remaining, percent_used, is_over_budget, is_near_limit)
    """
    remaining = limit_amount - total_spent
    if limit_amount > 0:
        percent_used = total_spent / limit_amount * _FULL_PCT
    else:
        percent_used = Decimal("0")
    is_over_budget = total_spent > limit_amount
    is_near_limit = not is_over_budget and near_limit_pct <= percent_used < _FULL_PCT
    return remaining, percent_used, is_over_budget, is_near_limit


def _to_amount(value: Union[Decimal, float, int, str]) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise BudgetValidationError(
            f"Invalid limit amount: {value}",
            details={"limit_amount": value},
            original_error=e
        )
    if not amount.is_finite() or amount <= 0:
        raise BudgetValidationError(
            "Limit amount must be greater than 0",
            details={"limit_amount": value}
        )
    return amount


def _to_date(value: Union[date, str], field_name: str) -> date:
    try:
        return parse_date(value)
    except (TypeError, ValueError) as e:
        raise BudgetValidationError(
            f"Invalid {field_name}: {value}. Use YYYY-MM-DD",
            details={field_name: value},
            original_error=e
        )


class BudgetManager:
    """
    Manages budgets and their period lifecycle.

    The manager is the only component that decides a budget's period has
    ended and writes the next period's dates. Spending metrics are always
    computed against the period as persisted after that decision.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        aggregator: Optional[SpendingAggregator] = None,
        config: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize the budget manager.

        Args:
            db_manager: DatabaseManager instance acting as the budget store
            aggregator: SpendingAggregator (built from db_manager if omitted)
            config: Optional configuration dictionary (uses the 'budgeting' section)
        """
        self.db_manager = db_manager
        self.aggregator = aggregator or SpendingAggregator(db_manager)

        budgeting_cfg = (config or {}).get("budgeting", {}) or {}
        self.near_limit_pct = Decimal(str(budgeting_cfg.get("near_limit_pct", DEFAULT_NEAR_LIMIT_PCT)))
        self.recompute_end_date_on_period_change = bool(
            budgeting_cfg.get("recompute_end_date_on_period_change", False)
        )
        self.default_period_type = coerce_period_type(
            budgeting_cfg.get("default_period_type", PeriodType.MONTHLY)
        )
        logger.info("Budget manager initialized")

    # ------------------------------------------------------------------
    # Period lifecycle
    # ------------------------------------------------------------------

    @staticmethod
    def check_and_rollover(budget: Budget, today: date) -> Optional[Period]:
        """
        Decide whether a budget's period has elapsed and compute its replacement.

        Rolls forward as many whole periods as needed, chaining each new
        period from the previous end date, until the period's end date is on
        or after today. Does not touch the store.

        Args:
            budget: Budget (or any object with end_date and period_type)
            today: Reference date

        Returns:
            The Period to persist, or None if the current period is still open

        Raises:
            InvalidPeriodTypeError: If the budget carries an unknown period type
        """
        new_period = None
        for period in iter_periods_until(budget.end_date, budget.period_type, today):
            new_period = period
        return new_period

    def _roll_forward(self, budget: Budget, today: date) -> Tuple[Budget, bool]:
        """Persist a rollover if one is due and return the budget as stored afterwards."""
        new_period = self.check_and_rollover(budget, today)
        if new_period is None:
            return budget, False

        self.db_manager.update_budget_dates(budget.id, new_period.start_date, new_period.end_date)
        logger.info(
            f"Budget {budget.id} restarted: {format_date(new_period.start_date)} "
            f"to {format_date(new_period.end_date)}"
        )

        refreshed = self.db_manager.get_budget(budget.id)
        if refreshed is None:
            raise BudgetNotFoundError(
                "Budget disappeared during rollover",
                details={"budget_id": budget.id}
            )
        return refreshed, True

    def _with_spending(self, budget: Budget, rolled_over: bool) -> BudgetWithSpending:
        """Attach spending totals for the budget's stored period."""
        total_spent = self.aggregator.sum_active_amount(
            budget.user_id,
            budget.category_id,
            budget.start_date,
            budget.end_date
        )
        limit_amount = Decimal(str(budget.limit_amount))
        remaining, percent_used, is_over, is_near = compute_spending_metrics(
            limit_amount, total_spent, self.near_limit_pct
        )
        return BudgetWithSpending(
            budget_id=budget.id,
            user_id=budget.user_id,
            category_id=budget.category_id,
            category_name=budget.category_name,
            limit_amount=limit_amount,
            period_type=coerce_period_type(budget.period_type),
            start_date=budget.start_date,
            end_date=budget.end_date,
            total_spent=total_spent,
            remaining=remaining,
            percent_used=percent_used,
            is_over_budget=is_over,
            is_near_limit=is_near,
            rolled_over=rolled_over,
        )

    def _current_view(self, budget: Budget, today: date) -> BudgetWithSpending:
        current, rolled_over = self._roll_forward(budget, today)
        return self._with_spending(current, rolled_over)

    def get_budgets_with_current_spending(
        self,
        user_id: str,
        today: Optional[date] = None
    ) -> BudgetListing:
        """
        Get all active budgets for a user in their current period with spending.

        Each budget is rolled forward (and persisted) before its spending is
        summed. A failure on one budget is recorded in the listing's failures
        and does not stop the others; a store outage aborts the whole call.

        Args:
            user_id: Owner reference
            today: Reference date (defaults to today)

        Returns:
            BudgetListing ordered by category description

        Raises:
            StoreUnavailableError: If the store cannot be reached
            DatabaseError: If the initial budget load fails
        """
        if today is None:
            today = date.today()

        listing = BudgetListing()
        for budget in self.db_manager.find_active_budgets_by_user(user_id):
            try:
                listing.budgets.append(self._current_view(budget, today))
            except StoreUnavailableError:
                raise
            except FinanceAppError as e:
                logger.error(f"Failed to compute budget {budget.id} (category {budget.category_id}): {e}")
                listing.failures.append(BudgetFailure(
                    budget_id=budget.id,
                    category_id=budget.category_id,
                    category_name=budget.category_name,
                    error=e,
                ))

        listing.budgets.sort(key=lambda view: view.category_name or "")
        return listing

    def get_budget_by_category(
        self,
        user_id: str,
        category_id: int,
        today: Optional[date] = None
    ) -> Optional[BudgetWithSpending]:
        """
        Get the active budget for one category in its current period.

        Returns:
            BudgetWithSpending, or None if the user has no active budget for the category
        """
        if today is None:
            today = date.today()

        budget = self.db_manager.find_active_budget_by_user_and_category(user_id, category_id)
        if budget is None:
            return None
        return self._current_view(budget, today)

    def get_budget_alerts(self, user_id: str, today: Optional[date] = None) -> BudgetAlerts:
        """
        Get budgets that are over their limit or within the near-limit band.

        Uses the same rollover and aggregation pipeline as the full listing.
        """
        listing = self.get_budgets_with_current_spending(user_id, today)
        return self._alerts_from_listing(listing)

    @staticmethod
    def _alerts_from_listing(listing: BudgetListing) -> BudgetAlerts:
        over_budget = [view for view in listing.budgets if view.is_over_budget]
        near_limit = [view for view in listing.budgets if view.is_near_limit]
        return BudgetAlerts(
            total_alerts=len(over_budget) + len(near_limit),
            over_budget=over_budget,
            near_limit=near_limit,
            failures=list(listing.failures),
        )

    def get_budget_summary(self, user_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Summarize all of a user's budgets for dashboard display.

        Returns:
            Dictionary with budget count, alert counts, and budgeted/spent/remaining totals
        """
        listing = self.get_budgets_with_current_spending(user_id, today)
        alerts = self._alerts_from_listing(listing)

        zero = Decimal("0")
        return {
            "total_budgets": len(listing.budgets),
            "total_alerts": alerts.total_alerts,
            "over_budget_count": len(alerts.over_budget),
            "near_limit_count": len(alerts.near_limit),
            "total_budgeted": sum((view.limit_amount for view in listing.budgets), zero),
            "total_spent": sum((view.total_spent for view in listing.budgets), zero),
            "total_remaining": sum((view.remaining for view in listing.budgets), zero),
            "failed_budgets": len(listing.failures),
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_budget(
        self,
        user_id: str,
        category_id: int,
        limit_amount: Union[Decimal, float, str],
        period_type: Optional[Union[PeriodType, str]] = None,
        start_date: Optional[Union[date, str]] = None,
        today: Optional[date] = None
    ) -> BudgetResult:
        """
        Create a budget for a category.

        The end date is always derived from start_date and period_type.

        Args:
            user_id: Owner reference
            category_id: Category ID
            limit_amount: Positive spending ceiling per period
            period_type: weekly, biweekly or monthly (config default if omitted)
            start_date: First day of the first period (defaults to today)
            today: Reference date used when start_date is omitted

        Returns:
            BudgetResult with the stored budget on success; code 'validation_error'
            when the category does not exist

        Raises:
            DatabaseError: If the store fails
        """
        try:
            amount = _to_amount(limit_amount)
            kind = coerce_period_type(period_type) if period_type is not None else self.default_period_type
            start = _to_date(start_date, "start_date") if start_date is not None else (today or date.today())

            if self.db_manager.get_category(category_id) is None:
                raise BudgetValidationError(
                    f"Unknown category: {category_id}",
                    details={"category_id": category_id}
                )

            existing = self.db_manager.find_active_budget_by_user_and_category(user_id, category_id)
            if existing is not None:
                raise DuplicateActiveBudgetError(
                    "An active budget already exists for this category",
                    details={"user_id": user_id, "category_id": category_id, "budget_id": existing.id}
                )
        except BudgetError as e:
            logger.warning(f"Rejected budget creation for user {user_id}: {e}")
            return BudgetResult.from_error(e)

        budget = Budget(
            user_id=user_id,
            category_id=category_id,
            limit_amount=amount,
            period_type=kind,
            start_date=start,
            end_date=end_date_of(start, kind),
            active=True,
        )
        stored = self.db_manager.insert_budget(budget)
        logger.info(
            f"Created {kind.value} budget {stored.id} for category {category_id}: "
            f"{amount} ({format_date(stored.start_date)} to {format_date(stored.end_date)})"
        )
        return BudgetResult(success=True, message="Budget created successfully", budget=stored)

    def _validated_fields(self, changes: BudgetUpdate) -> Dict[str, Any]:
        fields = changes.provided_fields()
        if "limit_amount" in fields:
            fields["limit_amount"] = _to_amount(fields["limit_amount"])
        if "period_type" in fields:
            fields["period_type"] = coerce_period_type(fields["period_type"])
        if "start_date" in fields:
            fields["start_date"] = _to_date(fields["start_date"], "start_date")
        if "end_date" in fields:
            fields["end_date"] = _to_date(fields["end_date"], "end_date")
        return fields

    def _owned_budget(self, budget_id: str, user_id: str) -> Budget:
        current = self.db_manager.get_budget(budget_id)
        if current is None or current.user_id != user_id:
            raise BudgetNotFoundError(NOT_FOUND_MESSAGE, details={"budget_id": budget_id})
        return current

    @staticmethod
    def _check_date_order(start: date, end: date) -> None:
        if end < start:
            raise BudgetValidationError(
                "End date must be on or after start date",
                details={"start_date": format_date(start), "end_date": format_date(end)}
            )

    def update_budget(self, budget_id: str, user_id: str, changes: BudgetUpdate) -> BudgetResult:
        """
        Apply a partial update to an active budget.

        Only fields set on `changes` are written; updated_at is always bumped.
        Changing period_type or start_date leaves end_date untouched unless
        `recompute_end_date_on_period_change` is enabled in configuration.
        A single start_date or end_date is checked against the stored other
        bound so the period never ends before it starts.

        Returns:
            BudgetResult; code 'not_found' if no active budget matches (budget_id, user_id)

        Raises:
            DatabaseError: If the store fails
        """
        try:
            fields = self._validated_fields(changes)
            if not fields:
                return BudgetResult(success=False, message="No fields to update", code="no_changes")

            wants_recompute = "end_date" not in fields and (
                "period_type" in fields or "start_date" in fields
            )
            recompute = self.recompute_end_date_on_period_change and wants_recompute
            if "start_date" in fields and "end_date" in fields:
                self._check_date_order(fields["start_date"], fields["end_date"])
            elif recompute or "start_date" in fields or "end_date" in fields:
                # One-sided date change: the other bound comes from the stored row
                current = self._owned_budget(budget_id, user_id)
                start = fields.get("start_date", current.start_date)
                if recompute:
                    kind = fields.get("period_type", current.period_type)
                    fields["end_date"] = end_date_of(start, kind)
                self._check_date_order(start, fields.get("end_date", current.end_date))

            affected = self.db_manager.update_budget_fields(budget_id, user_id, fields)
            if affected == 0:
                raise BudgetNotFoundError(NOT_FOUND_MESSAGE, details={"budget_id": budget_id})
        except BudgetError as e:
            logger.warning(f"Rejected update of budget {budget_id}: {e}")
            return BudgetResult.from_error(e)

        logger.info(f"Budget updated successfully: {budget_id} ({', '.join(sorted(fields))})")
        return BudgetResult(
            success=True,
            message="Budget updated successfully",
            budget=self.db_manager.get_budget(budget_id)
        )

    def soft_delete_budget(self, budget_id: str, user_id: str) -> BudgetResult:
        """
        Soft delete a budget (set active = False).

        Deleting an already-inactive budget reports not_found.

        Raises:
            DatabaseError: If the store fails
        """
        affected = self.db_manager.soft_delete_budget(budget_id, user_id)
        if affected == 0:
            logger.warning(f"Soft delete found no active budget {budget_id} for user {user_id}")
            return BudgetResult(success=False, message=NOT_FOUND_MESSAGE, code="not_found")

        logger.info(f"Budget soft deleted successfully: {budget_id}")
        return BudgetResult(success=True, message="Budget deleted successfully")
