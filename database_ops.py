"""
Database operations module for budget and transaction storage.

This module handles database connections, schema creation, and the budget
and transaction store operations using SQLAlchemy ORM. Supports SQLite by
default with easy migration to other databases.
"""

import enum
import logging
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    create_engine,
    func,
)
from sqlalchemy.exc import DisconnectionError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from exceptions import DatabaseError, StoreUnavailableError
from period_calculator import PeriodType

# Configure logging
logger = logging.getLogger(__name__)

# Fields a caller may change through update_budget_fields
UPDATABLE_BUDGET_FIELDS = ("limit_amount", "period_type", "start_date", "end_date")


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone awareness.

    All timestamps in the database are stored in UTC. Budget period dates
    are plain calendar dates and never pass through this function.

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(UTC)


def _enum_values(enum_cls) -> List[str]:
    return [member.value for member in enum_cls]


def translate_store_error(error: SQLAlchemyError, operation: str, **details: Any) -> DatabaseError:
    """
    Wrap a SQLAlchemy error into the application's database error types.

    Connection-level failures become StoreUnavailableError; everything else
    becomes DatabaseError.

    Args:
        error: Original SQLAlchemy exception
        operation: Short description of the failed operation
        **details: Extra context attached to the error

    Returns:
        DatabaseError (or StoreUnavailableError) ready to be raised
    """
    details = {"operation": operation, **details}
    if isinstance(error, (OperationalError, DisconnectionError)):
        return StoreUnavailableError(
            f"Store unavailable during {operation}: {error}",
            details=details,
            original_error=error
        )
    return DatabaseError(
        f"Database error during {operation}: {error}",
        details=details,
        original_error=error
    )


# Base class for declarative models
Base = declarative_base()


class TransactionKind(enum.Enum):
    """Enumeration of transaction kinds."""
    INCOME = "income"
    EXPENSE = "expense"


class Category(Base):
    """
    SQLAlchemy model representing a spending or income category.

    Attributes:
        id: Auto-incrementing primary key
        description: Human-readable category name
        created_at: Timestamp when category was created
    """

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    description = Column(String(100), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, description='{self.description}')>"


class Budget(Base):
    """
    SQLAlchemy model representing a periodic budget for one category.

    Attributes:
        id: UUID string primary key generated at creation
        user_id: Owner reference
        category_id: Foreign key to categories table
        limit_amount: Spending ceiling for one period
        period_type: weekly, biweekly or monthly
        start_date: First day of the current period (inclusive)
        end_date: Last day of the current period (inclusive)
        active: False once soft-deleted
        created_at: Timestamp when budget was created
        updated_at: Timestamp when budget was last changed
    """

    __tablename__ = "budgets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    limit_amount = Column(Numeric(12, 2), nullable=False)
    period_type = Column(
        Enum(PeriodType, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False
    )
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    category = relationship("Category", lazy="joined")

    __table_args__ = (
        Index("idx_budget_user_category_active", "user_id", "category_id", "active"),
    )

    @property
    def category_name(self) -> Optional[str]:
        """Description of the budget's category, if loaded."""
        return self.category.description if self.category is not None else None

    def __repr__(self) -> str:
        return (
            f"<Budget(id={self.id}, user_id={self.user_id}, category_id={self.category_id}, "
            f"limit={self.limit_amount}, period={self.start_date} to {self.end_date})>"
        )


class Transaction(Base):
    """
    SQLAlchemy model representing an income or expense record.

    Attributes:
        id: Auto-incrementing primary key
        user_id: Owner reference
        category_id: Foreign key to categories table
        kind: income or expense
        amount: Positive transaction amount
        description: Free-text description
        date: Calendar date of the transaction
        active: False once soft-deleted
        created_at: Timestamp when the record was created
    """

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    kind = Column(
        Enum(TransactionKind, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False
    )
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(255), nullable=True)
    date = Column(Date, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    category = relationship("Category")

    __table_args__ = (
        Index("idx_txn_user_category_date", "user_id", "category_id", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id}, kind={self.kind.value}, date={self.date}, "
            f"amount={self.amount})>"
        )


class DatabaseManager:
    """
    Manages database connections and store operations.

    This class handles database initialization and session management, and
    provides the budget store and transaction store operations used by the
    budget lifecycle manager.
    """

    def __init__(self, connection_string: str):
        """
        Initialize the database manager.

        Args:
            connection_string: SQLAlchemy connection string (e.g., 'sqlite:///data/budgets.db')

        Raises:
            DatabaseError: If the engine cannot be created
        """
        try:
            self.engine = create_engine(connection_string, echo=False)
            self.SessionLocal = sessionmaker(bind=self.engine)
            logger.info(f"Database manager initialized with connection: {connection_string}")
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize database: {e}")
            raise translate_store_error(e, "initialize")

    def create_tables(self) -> None:
        """
        Create all database tables if they don't exist.

        Raises:
            DatabaseError: If table creation fails
        """
        try:
            Base.metadata.create_all(self.engine)
            logger.info("Database tables created/verified successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create database tables: {e}")
            raise translate_store_error(e, "create_tables")

    def get_session(self) -> Session:
        """
        Get a new database session.

        Note:
            Caller is responsible for closing the session.
        """
        return self.SessionLocal()

    # ------------------------------------------------------------------
    # Categories and transactions
    # ------------------------------------------------------------------

    def add_category(self, description: str) -> Category:
        """
        Create a category, or return the existing one with the same description.

        Raises:
            DatabaseError: If the insert fails
        """
        session = self.get_session()
        try:
            existing = session.query(Category).filter(Category.description == description).first()
            if existing:
                session.expunge(existing)
                return existing

            category = Category(description=description)
            session.add(category)
            session.commit()
            session.refresh(category)
            session.expunge(category)
            logger.info(f"Created category '{description}' (id={category.id})")
            return category
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to create category: {e}")
            raise translate_store_error(e, "add_category", description=description)
        finally:
            session.close()

    def get_category(self, category_id: int) -> Optional[Category]:
        """Return a category by ID, or None."""
        session = self.get_session()
        try:
            category = session.get(Category, category_id)
            if category:
                session.expunge(category)
            return category
        except SQLAlchemyError as e:
            raise translate_store_error(e, "get_category", category_id=category_id)
        finally:
            session.close()

    def add_transaction(
        self,
        user_id: str,
        category_id: int,
        amount: Decimal,
        transaction_date: date,
        kind: TransactionKind = TransactionKind.EXPENSE,
        description: Optional[str] = None
    ) -> Transaction:
        """
        Record an income or expense.

        Args:
            user_id: Owner reference
            category_id: Category ID
            amount: Positive amount
            transaction_date: Calendar date of the transaction
            kind: TransactionKind (defaults to expense)
            description: Optional free text

        Returns:
            Created Transaction object

        Raises:
            DatabaseError: If the insert fails
        """
        session = self.get_session()
        try:
            transaction = Transaction(
                user_id=user_id,
                category_id=category_id,
                kind=kind,
                amount=Decimal(str(amount)),
                description=description,
                date=transaction_date,
            )
            session.add(transaction)
            session.commit()
            session.refresh(transaction)
            session.expunge(transaction)
            logger.debug(f"Recorded {kind.value} of {amount} for user {user_id} on {transaction_date}")
            return transaction
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to record transaction: {e}")
            raise translate_store_error(e, "add_transaction", user_id=user_id, category_id=category_id)
        finally:
            session.close()

    def sum_amount(
        self,
        user_id: str,
        category_id: int,
        period_start: date,
        period_end: date,
        kind: TransactionKind = TransactionKind.EXPENSE,
        active_only: bool = True
    ) -> Decimal:
        """
        Sum transaction amounts for a user and category over an inclusive date range.

        Returns:
            Total as Decimal; Decimal('0') when nothing matches

        Raises:
            DatabaseError: If the query fails
        """
        session = self.get_session()
        try:
            query = session.query(func.coalesce(func.sum(Transaction.amount), 0)).filter(
                Transaction.user_id == user_id,
                Transaction.category_id == category_id,
                Transaction.kind == kind,
                Transaction.date >= period_start,
                Transaction.date <= period_end,
            )
            if active_only:
                query = query.filter(Transaction.active.is_(True))
            total = query.scalar()
            return total if isinstance(total, Decimal) else Decimal(str(total or 0))
        except SQLAlchemyError as e:
            raise translate_store_error(
                e, "sum_amount",
                user_id=user_id, category_id=category_id,
                period_start=period_start, period_end=period_end
            )
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Budget store
    # ------------------------------------------------------------------

    def find_active_budgets_by_user(self, user_id: str) -> List[Budget]:
        """
        Load all active budgets for a user, ordered by category description.

        Raises:
            DatabaseError: If the query fails
        """
        session = self.get_session()
        try:
            budgets = (
                session.query(Budget)
                .join(Category, Budget.category_id == Category.id)
                .filter(Budget.user_id == user_id, Budget.active.is_(True))
                .order_by(Category.description, Budget.id)
                .all()
            )
            for budget in budgets:
                session.expunge(budget)
            return budgets
        except SQLAlchemyError as e:
            logger.error(f"Failed to load budgets for user {user_id}: {e}")
            raise translate_store_error(e, "find_active_budgets_by_user", user_id=user_id)
        finally:
            session.close()

    def find_active_budget_by_user_and_category(self, user_id: str, category_id: int) -> Optional[Budget]:
        """
        Return the active budget for (user, category), or None.

        Raises:
            DatabaseError: If the query fails
        """
        session = self.get_session()
        try:
            budget = session.query(Budget).filter(
                Budget.user_id == user_id,
                Budget.category_id == category_id,
                Budget.active.is_(True)
            ).first()
            if budget:
                session.expunge(budget)
            return budget
        except SQLAlchemyError as e:
            raise translate_store_error(
                e, "find_active_budget_by_user_and_category",
                user_id=user_id, category_id=category_id
            )
        finally:
            session.close()

    def get_budget(self, budget_id: str) -> Optional[Budget]:
        """
        Return an active budget by ID, or None.

        Raises:
            DatabaseError: If the query fails
        """
        session = self.get_session()
        try:
            budget = session.query(Budget).filter(
                Budget.id == budget_id,
                Budget.active.is_(True)
            ).first()
            if budget:
                session.expunge(budget)
            return budget
        except SQLAlchemyError as e:
            raise translate_store_error(e, "get_budget", budget_id=budget_id)
        finally:
            session.close()

    def insert_budget(self, budget: Budget) -> Budget:
        """
        Persist a new budget and return it re-read from the store.

        Raises:
            DatabaseError: If the insert fails
        """
        session = self.get_session()
        try:
            session.add(budget)
            session.commit()
            budget_id = budget.id
            stored = session.query(Budget).filter(Budget.id == budget_id).one()
            session.expunge(stored)
            logger.info(f"Inserted budget {budget_id} for user {stored.user_id}")
            return stored
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to insert budget: {e}")
            raise translate_store_error(e, "insert_budget")
        finally:
            session.close()

    def update_budget_dates(self, budget_id: str, start_date: date, end_date: date) -> int:
        """
        Move a budget's period boundaries and bump updated_at.

        Returns:
            Number of rows affected

        Raises:
            DatabaseError: If the update fails
        """
        session = self.get_session()
        try:
            affected = session.query(Budget).filter(Budget.id == budget_id).update(
                {
                    Budget.start_date: start_date,
                    Budget.end_date: end_date,
                    Budget.updated_at: utc_now(),
                },
                synchronize_session=False
            )
            session.commit()
            return affected
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to update dates for budget {budget_id}: {e}")
            raise translate_store_error(e, "update_budget_dates", budget_id=budget_id)
        finally:
            session.close()

    def update_budget_fields(self, budget_id: str, user_id: str, fields: Dict[str, Any]) -> int:
        """
        Apply a partial update to an active budget owned by user_id.

        Only keys listed in UPDATABLE_BUDGET_FIELDS are accepted; updated_at
        is always bumped.

        Returns:
            Number of rows affected (0 if no active row matches)

        Raises:
            ValueError: If fields contains an unknown key
            DatabaseError: If the update fails
        """
        unknown = set(fields) - set(UPDATABLE_BUDGET_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update budget fields: {sorted(unknown)}")

        values = {getattr(Budget, name): value for name, value in fields.items()}
        values[Budget.updated_at] = utc_now()

        session = self.get_session()
        try:
            affected = session.query(Budget).filter(
                Budget.id == budget_id,
                Budget.user_id == user_id,
                Budget.active.is_(True)
            ).update(values, synchronize_session=False)
            session.commit()
            return affected
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to update budget {budget_id}: {e}")
            raise translate_store_error(e, "update_budget_fields", budget_id=budget_id)
        finally:
            session.close()

    def soft_delete_budget(self, budget_id: str, user_id: str) -> int:
        """
        Mark an active budget as inactive.

        Returns:
            Number of rows affected (0 if missing or already inactive)

        Raises:
            DatabaseError: If the update fails
        """
        session = self.get_session()
        try:
            affected = session.query(Budget).filter(
                Budget.id == budget_id,
                Budget.user_id == user_id,
                Budget.active.is_(True)
            ).update(
                {Budget.active: False, Budget.updated_at: utc_now()},
                synchronize_session=False
            )
            session.commit()
            return affected
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to soft delete budget {budget_id}: {e}")
            raise translate_store_error(e, "soft_delete_budget", budget_id=budget_id)
        finally:
            session.close()

    def close(self) -> None:
        """Dispose of the engine and its connection pool."""
        self.engine.dispose()
        logger.info("Database connection closed")
