from datetime import date
from decimal import Decimal

import pytest

from database_ops import DatabaseManager, Transaction, TransactionKind


@pytest.fixture
def db_manager(tmp_path):
    """Provide a DatabaseManager backed by a temporary SQLite file."""
    manager = DatabaseManager(f"sqlite:///{(tmp_path / 'budgets.db').as_posix()}")
    manager.create_tables()
    try:
        yield manager
    finally:
        manager.close()


@pytest.fixture
def add_expense(db_manager):
    """Return a helper that records an expense (optionally inactive)."""

    def _add(user_id, category_id, amount, on, active=True, kind=TransactionKind.EXPENSE):
        if active:
            return db_manager.add_transaction(user_id, category_id, Decimal(str(amount)), on, kind=kind)
        session = db_manager.get_session()
        try:
            session.add(Transaction(
                user_id=user_id,
                category_id=category_id,
                kind=kind,
                amount=Decimal(str(amount)),
                date=on,
                active=False,
            ))
            session.commit()
        finally:
            session.close()

    return _add
