"""
Command-line interface for the budget tracker.

Wires configuration, logging and the database into BudgetManager and
AnalyticsEngine, and exposes their operations as subcommands.
"""

import argparse
import json
import logging
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from analytics import AnalyticsEngine
from budgeting import (
    BudgetFailure,
    BudgetListing,
    BudgetManager,
    BudgetResult,
    BudgetUpdate,
    BudgetWithSpending,
)
from config_manager import load_config
from database_ops import DatabaseManager, TransactionKind
from exceptions import FinanceAppError
from period_calculator import PeriodType, format_date, parse_date
from utils import resolve_connection_string, resolve_log_path

# Configure module-level logger
logger = logging.getLogger(__name__)

_PERIOD_CHOICES = [p.value for p in PeriodType]


def setup_logging(config: dict) -> None:
    """
    Configure logging based on config settings.

    Args:
        config: Configuration dictionary with logging settings
    """
    log_config = config.get("logging", {}) or {}
    level_name = str(log_config.get("level") or "INFO").upper()
    log_level = getattr(logging, level_name, None)
    if not isinstance(log_level, int):
        logger.warning(f"Invalid log level '{level_name}'; defaulting to INFO")
        log_level = logging.INFO
    log_format = log_config.get("format") or "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file = log_config.get("file")

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        try:
            log_path = resolve_log_path(log_file)
        except OSError as exc:
            raise RuntimeError(f"Unable to prepare log file path '{log_file}': {exc}") from exc
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers,
        force=True
    )


def _parse_today(value: Optional[str]) -> date:
    return parse_date(value) if value else date.today()


def _print_result(result: BudgetResult) -> int:
    if result.success:
        print(f"[SUCCESS] {result.message}")
        if result.budget is not None:
            budget = result.budget
            print(f"  Budget ID: {budget.id}")
            print(f"  Period: {format_date(budget.start_date)} to {format_date(budget.end_date)}")
        return 0
    print(f"[ERROR] {result.message} ({result.code})", file=sys.stderr)
    return 1


def _print_budget_table(views: List[BudgetWithSpending]) -> None:
    print(f"{'='*100}")
    print(
        f"{'Category':<20} {'Period':<25} {'Limit':>12} {'Spent':>12} "
        f"{'Remaining':>12} {'Used':>7}  Status"
    )
    print(f"{'-'*100}")
    for view in views:
        status = "OVER" if view.is_over_budget else ("NEAR" if view.is_near_limit else "OK")
        period = f"{format_date(view.start_date)}..{format_date(view.end_date)}"
        print(
            f"{(view.category_name or '')[:20]:<20} {period:<25} "
            f"${view.limit_amount:>11,.2f} ${view.total_spent:>11,.2f} "
            f"${view.remaining:>11,.2f} {view.percent_used:>6.1f}%  {status}"
        )
    print(f"{'='*100}")


def _print_failures(failures: List[BudgetFailure]) -> None:
    for failure in failures:
        print(
            f"[ERROR] Budget {failure.budget_id} ({failure.category_name}): {failure.message}",
            file=sys.stderr
        )


def cmd_list(manager: BudgetManager, args) -> int:
    listing: BudgetListing = manager.get_budgets_with_current_spending(args.user, _parse_today(args.today))
    if args.json:
        print(json.dumps([view.to_dict() for view in listing.budgets], indent=2))
    elif listing.budgets:
        _print_budget_table(listing.budgets)
    else:
        print("No active budgets found")
    _print_failures(listing.failures)
    return 1 if listing.has_failures else 0


def cmd_show(manager: BudgetManager, args) -> int:
    view = manager.get_budget_by_category(args.user, args.category_id, _parse_today(args.today))
    if view is None:
        print(f"No budget found for category {args.category_id}", file=sys.stderr)
        return 1
    if args.json:
        print(json.dumps(view.to_dict(), indent=2))
    else:
        _print_budget_table([view])
    return 0


def cmd_alerts(manager: BudgetManager, args) -> int:
    alerts = manager.get_budget_alerts(args.user, _parse_today(args.today))
    print(f"Total alerts: {alerts.total_alerts}")
    for view in alerts.over_budget:
        print(f"  [OVER] {view.category_name}: ${view.total_spent:,.2f} of ${view.limit_amount:,.2f}")
    for view in alerts.near_limit:
        print(f"  [NEAR] {view.category_name}: {view.percent_used:.1f}% used")
    _print_failures(alerts.failures)
    return 1 if alerts.failures else 0


def cmd_summary(manager: BudgetManager, args) -> int:
    summary = manager.get_budget_summary(args.user, _parse_today(args.today))
    print(json.dumps(
        {key: float(value) if isinstance(value, Decimal) else value for key, value in summary.items()},
        indent=2
    ))
    return 1 if summary["failed_budgets"] else 0


def cmd_create(manager: BudgetManager, args) -> int:
    result = manager.create_budget(
        user_id=args.user,
        category_id=args.category_id,
        limit_amount=args.limit,
        period_type=args.period,
        start_date=args.start,
        today=_parse_today(args.today)
    )
    return _print_result(result)


def cmd_update(manager: BudgetManager, args) -> int:
    changes = BudgetUpdate(
        limit_amount=args.limit,
        period_type=args.period,
        start_date=args.start,
        end_date=args.end
    )
    return _print_result(manager.update_budget(args.budget_id, args.user, changes))


def cmd_delete(manager: BudgetManager, args) -> int:
    return _print_result(manager.soft_delete_budget(args.budget_id, args.user))


def cmd_add_category(db_manager: DatabaseManager, args) -> int:
    category = db_manager.add_category(args.description)
    print(f"[SUCCESS] Category {category.id}: {category.description}")
    return 0


def cmd_add_transaction(db_manager: DatabaseManager, args, kind: TransactionKind) -> int:
    amount = Decimal(args.amount)
    if amount <= 0:
        print("[ERROR] Amount must be greater than 0", file=sys.stderr)
        return 1
    transaction = db_manager.add_transaction(
        user_id=args.user,
        category_id=args.category_id,
        amount=amount,
        transaction_date=_parse_today(args.date),
        kind=kind,
        description=args.description
    )
    print(f"[SUCCESS] Recorded {kind.value} {transaction.id}: ${transaction.amount:,.2f} on {transaction.date}")
    return 0


def cmd_report(engine: AnalyticsEngine, args) -> int:
    kind = TransactionKind.INCOME if args.income else TransactionKind.EXPENSE
    report = {
        "year": args.year,
        "monthly_totals": engine.get_monthly_totals(args.user, args.year, kind),
        "top_categories": engine.get_top_categories(args.user, args.year),
        "balance": engine.get_balance(args.user),
    }
    print(json.dumps(report, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        description="Personal budget tracker",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create database tables")

    cat_parser = subparsers.add_parser("add-category", help="Create a category")
    cat_parser.add_argument("--description", required=True, help="Category description")

    for name, help_text in (("add-expense", "Record an expense"), ("add-income", "Record an income")):
        txn_parser = subparsers.add_parser(name, help=help_text)
        txn_parser.add_argument("--user", required=True, help="User ID")
        txn_parser.add_argument("--category-id", type=int, required=True, help="Category ID")
        txn_parser.add_argument("--amount", type=str, required=True, help="Amount")
        txn_parser.add_argument("--date", type=str, help="Transaction date (YYYY-MM-DD, default: today)")
        txn_parser.add_argument("--description", type=str, help="Description")

    create_parser = subparsers.add_parser("create", help="Create a budget")
    create_parser.add_argument("--user", required=True, help="User ID")
    create_parser.add_argument("--category-id", type=int, required=True, help="Category ID")
    create_parser.add_argument("--limit", type=str, required=True, help="Limit amount per period")
    create_parser.add_argument("--period", choices=_PERIOD_CHOICES, help="Period type")
    create_parser.add_argument("--start", type=str, help="Start date (YYYY-MM-DD, default: today)")
    create_parser.add_argument("--today", type=str, help="Override today's date (YYYY-MM-DD)")

    update_parser = subparsers.add_parser("update", help="Update a budget")
    update_parser.add_argument("budget_id", help="Budget ID")
    update_parser.add_argument("--user", required=True, help="User ID")
    update_parser.add_argument("--limit", type=str, help="New limit amount")
    update_parser.add_argument("--period", choices=_PERIOD_CHOICES, help="New period type")
    update_parser.add_argument("--start", type=str, help="New start date (YYYY-MM-DD)")
    update_parser.add_argument("--end", type=str, help="New end date (YYYY-MM-DD)")

    delete_parser = subparsers.add_parser("delete", help="Soft delete a budget")
    delete_parser.add_argument("budget_id", help="Budget ID")
    delete_parser.add_argument("--user", required=True, help="User ID")

    for name, help_text in (
        ("list", "List budgets with current spending"),
        ("alerts", "Show over-limit and near-limit budgets"),
        ("summary", "Show budget totals"),
    ):
        read_parser = subparsers.add_parser(name, help=help_text)
        read_parser.add_argument("--user", required=True, help="User ID")
        read_parser.add_argument("--today", type=str, help="Override today's date (YYYY-MM-DD)")
        if name == "list":
            read_parser.add_argument("--json", action="store_true", help="Print JSON")

    show_parser = subparsers.add_parser("show", help="Show the budget for one category")
    show_parser.add_argument("--user", required=True, help="User ID")
    show_parser.add_argument("--category-id", type=int, required=True, help="Category ID")
    show_parser.add_argument("--today", type=str, help="Override today's date (YYYY-MM-DD)")
    show_parser.add_argument("--json", action="store_true", help="Print JSON")

    report_parser = subparsers.add_parser("report", help="Yearly totals, top categories and balance")
    report_parser.add_argument("--user", required=True, help="User ID")
    report_parser.add_argument("--year", type=int, default=date.today().year, help="Calendar year")
    report_parser.add_argument("--income", action="store_true", help="Report incomes instead of expenses")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the budget tracker CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_config(args.config)
    except FinanceAppError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    setup_logging(config)

    db_manager = DatabaseManager(resolve_connection_string(config))
    try:
        db_manager.create_tables()
        if args.command == "init-db":
            print("[SUCCESS] Database initialized")
            return 0
        if args.command == "add-category":
            return cmd_add_category(db_manager, args)
        if args.command == "add-expense":
            return cmd_add_transaction(db_manager, args, TransactionKind.EXPENSE)
        if args.command == "add-income":
            return cmd_add_transaction(db_manager, args, TransactionKind.INCOME)
        if args.command == "report":
            return cmd_report(AnalyticsEngine(db_manager, config), args)

        manager = BudgetManager(db_manager, config=config)
        handlers = {
            "create": cmd_create,
            "update": cmd_update,
            "delete": cmd_delete,
            "list": cmd_list,
            "show": cmd_show,
            "alerts": cmd_alerts,
            "summary": cmd_summary,
        }
        return handlers[args.command](manager, args)
    except FinanceAppError as e:
        logger.error(f"{args.command} command failed: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (ValueError, InvalidOperation) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        db_manager.close()


if __name__ == "__main__":
    sys.exit(main())
