"""
Document store access for expenses, incomes and budgets.

Defines the ``DocumentStore`` interface the engine reads through, the plain
record types it returns, and ``DatabaseManager``, a SQLAlchemy-backed store.
Budget documents keep their legacy shape (``categoryBudgets`` / ``items`` /
``subBudgets``) in JSON columns so normalization sees exactly what editing
screens wrote.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    create_engine,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from budget_normalizer import BudgetRecord, coerce_amount, round_half_up
from calendar_utils import YearMonth, parse_calendar_date, parse_year_month
from exceptions import CalendarParseError, DatabaseError

# Configure logging
logger = logging.getLogger(__name__)

Base = declarative_base()

ALL_REGISTRANTS = "(all)"

# Largest number of values the store accepts in one "IN" filter.
MAX_IN_VALUES = 10


def utc_now() -> datetime:
    """Current UTC datetime with timezone info."""
    return datetime.now(UTC)


def budget_doc_id(month: str, registrant: str) -> str:
    """Document id of the budget for ``month`` and registrant scope."""
    return f"{month}__{registrant}"


@dataclass(frozen=True)
class ExpenseRecord:
    """
    One expense as read from the store.

    ``month`` is the fetch key and is trusted for filtering; ``date`` is
    trusted for placing the expense on a calendar day.
    """
    id: Optional[int]
    registrant: str
    date: str
    month: str
    amount: int
    category: str
    sub_category: str = ""
    source: str = ""
    memo: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any], doc_id: Optional[int] = None) -> "ExpenseRecord":
        """Build a record from a stored document, coercing missing fields."""
        return cls(
            id=doc_id if doc_id is not None else doc.get("id"),
            registrant=str(doc.get("registrant") or ""),
            date=str(doc.get("date") or ""),
            month=str(doc.get("month") or ""),
            amount=round_half_up(coerce_amount(doc.get("amount"))),
            category=str(doc.get("category") or ""),
            sub_category=str(doc.get("subCategory") or ""),
            source=str(doc.get("source") or ""),
            memo=str(doc.get("memo") or ""),
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
        )

    @property
    def calendar_date(self) -> Optional[date]:
        """Parsed ``date``, or None when the stored value is malformed."""
        try:
            return parse_calendar_date(self.date)
        except CalendarParseError:
            return None

    @property
    def year_month(self) -> Optional[YearMonth]:
        try:
            return parse_year_month(self.month)
        except CalendarParseError:
            return None


@dataclass(frozen=True)
class IncomeRecord:
    """One income entry as read from the store."""
    registrant: str
    date: str
    amount: int
    source: str = ""

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "IncomeRecord":
        return cls(
            registrant=str(doc.get("registrant") or ""),
            date=str(doc.get("date") or ""),
            amount=round_half_up(coerce_amount(doc.get("amount"))),
            source=str(doc.get("source") or ""),
        )


class DocumentStore(ABC):
    """
    Read interface of the document store.

    Implementations may return results in any order; callers batch month
    keys to at most ``max_in_values`` per expense query.
    """

    max_in_values: int = MAX_IN_VALUES

    @abstractmethod
    def fetch_expenses_by_months(self, months: Sequence[str]) -> List[ExpenseRecord]:
        """Expenses whose ``month`` is one of ``months``."""

    @abstractmethod
    def fetch_incomes_by_date_range(self, start: str, end_exclusive: str) -> List[IncomeRecord]:
        """Incomes with ``start <= date < end_exclusive`` (ISO date strings)."""

    @abstractmethod
    def fetch_budget_doc(self, month: str, scope_key: str = ALL_REGISTRANTS) -> Optional[BudgetRecord]:
        """Budget document for the month and registrant scope, or None."""

    def fetch_by_month(self, month: str) -> List[ExpenseRecord]:
        return self.fetch_expenses_by_months([month])


class ExpenseDocument(Base):
    """
    SQLAlchemy model for an expense document.

    Attributes:
        id: Auto-incrementing primary key
        registrant: Person who entered the expense
        date: Calendar date string ``YYYY-MM-DD``
        month: Year-month string ``YYYY-MM`` (query key)
        amount: Signed integer amount
        category: Budget category
        sub_category: Subcategory (free text allowed)
        source: Payment source
        memo: Optional note
    """

    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    registrant = Column(String(100), nullable=False, default="")
    date = Column(String(10), nullable=False)
    month = Column(String(7), nullable=False, index=True)
    amount = Column(Integer, nullable=False, default=0)
    category = Column(String(100), nullable=False, default="")
    sub_category = Column(String(100), nullable=False, default="")
    source = Column(String(100), nullable=False, default="")
    memo = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_expense_month_date", "month", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<ExpenseDocument(id={self.id}, date={self.date}, "
            f"category='{self.category}', amount={self.amount})>"
        )

    def to_record(self) -> ExpenseRecord:
        return ExpenseRecord(
            id=self.id,
            registrant=self.registrant or "",
            date=self.date or "",
            month=self.month or "",
            amount=int(self.amount or 0),
            category=self.category or "",
            sub_category=self.sub_category or "",
            source=self.source or "",
            memo=self.memo or "",
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class IncomeDocument(Base):
    """SQLAlchemy model for an income document."""

    __tablename__ = "incomes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    registrant = Column(String(100), nullable=False, default="")
    date = Column(String(10), nullable=False, index=True)
    amount = Column(Integer, nullable=False, default=0)
    source = Column(String(100), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<IncomeDocument(id={self.id}, date={self.date}, amount={self.amount})>"

    def to_record(self) -> IncomeRecord:
        return IncomeRecord(
            registrant=self.registrant or "",
            date=self.date or "",
            amount=int(self.amount or 0),
            source=self.source or "",
        )


class BudgetDocument(Base):
    """
    SQLAlchemy model for a monthly budget document.

    The three amount maps are stored as written, without reconciliation.
    """

    __tablename__ = "budgets"

    doc_id = Column(String(150), primary_key=True)
    month = Column(String(7), nullable=False, index=True)
    registrant = Column(String(100), nullable=False)
    category_budgets = Column(JSON, nullable=True)
    items = Column(JSON, nullable=True)
    sub_budgets = Column(JSON, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<BudgetDocument(doc_id='{self.doc_id}')>"

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"month": self.month, "registrant": self.registrant}
        if self.category_budgets is not None:
            doc["categoryBudgets"] = self.category_budgets
        if self.items is not None:
            doc["items"] = self.items
        if self.sub_budgets is not None:
            doc["subBudgets"] = self.sub_budgets
        return doc


class DatabaseManager(DocumentStore):
    """
    SQLAlchemy implementation of the document store.

    Handles engine and session lifecycle, the read queries the engine needs,
    and the single-document writes used by editing screens.
    """

    def __init__(self, connection_string: str, max_in_values: int = MAX_IN_VALUES):
        """
        Initialize the database manager.

        Args:
            connection_string: SQLAlchemy connection string (e.g. 'sqlite:///data/household.db')
            max_in_values: Largest month list accepted by one expense query

        Raises:
            DatabaseError: If the engine cannot be created
        """
        try:
            self.engine = create_engine(connection_string, echo=False)
            self.SessionLocal = sessionmaker(bind=self.engine)
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize database: {e}")
            raise DatabaseError(
                "Failed to initialize database",
                details={"connection_string": connection_string},
                original_error=e
            ) from e
        self.max_in_values = max_in_values
        logger.info(f"Database manager initialized with connection: {connection_string}")

    def create_tables(self) -> None:
        """
        Create all tables if they don't exist.

        Raises:
            DatabaseError: If table creation fails
        """
        try:
            Base.metadata.create_all(self.engine)
            logger.info("Database tables created/verified successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create database tables: {e}")
            raise DatabaseError("Failed to create database tables", original_error=e) from e

    def get_session(self) -> Session:
        """
        Get a new database session.

        Note:
            Caller is responsible for closing the session.
        """
        return self.SessionLocal()

    def close(self) -> None:
        """Dispose of the engine's connection pool."""
        self.engine.dispose()
        logger.info("Database connection closed")

    # ------------------------------------------------------------------ reads

    def fetch_expenses_by_months(self, months: Sequence[str]) -> List[ExpenseRecord]:
        """
        Expenses whose ``month`` is one of ``months``.

        Raises:
            DatabaseError: If more than ``max_in_values`` months are requested
                or the query fails
        """
        months = [str(m) for m in months]
        if not months:
            return []
        if len(months) > self.max_in_values:
            raise DatabaseError(
                "Too many values for an IN filter",
                details={"requested": len(months), "limit": self.max_in_values}
            )
        session = self.get_session()
        try:
            rows = (
                session.query(ExpenseDocument)
                .filter(ExpenseDocument.month.in_(months))
                .order_by(ExpenseDocument.date, ExpenseDocument.id)
                .all()
            )
            records = [row.to_record() for row in rows]
            logger.debug(f"Fetched {len(records)} expenses for months {months}")
            return records
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch expenses for {months}: {e}")
            raise DatabaseError(
                "Failed to fetch expenses",
                details={"months": ",".join(months)},
                original_error=e
            ) from e
        finally:
            session.close()

    def fetch_incomes_by_date_range(self, start: str, end_exclusive: str) -> List[IncomeRecord]:
        session = self.get_session()
        try:
            rows = (
                session.query(IncomeDocument)
                .filter(IncomeDocument.date >= start, IncomeDocument.date < end_exclusive)
                .order_by(IncomeDocument.date, IncomeDocument.id)
                .all()
            )
            return [row.to_record() for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch incomes for {start}..{end_exclusive}: {e}")
            raise DatabaseError(
                "Failed to fetch incomes",
                details={"start": start, "end": end_exclusive},
                original_error=e
            ) from e
        finally:
            session.close()

    def fetch_budget_doc(self, month: str, scope_key: str = ALL_REGISTRANTS) -> Optional[BudgetRecord]:
        session = self.get_session()
        try:
            doc = session.get(BudgetDocument, budget_doc_id(str(month), scope_key))
            if doc is None:
                return None
            return BudgetRecord.from_document(doc.to_document())
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch budget for {month}: {e}")
            raise DatabaseError(
                "Failed to fetch budget",
                details={"month": month, "scope": scope_key},
                original_error=e
            ) from e
        finally:
            session.close()

    # ----------------------------------------------------------------- writes

    def add_expense(self, doc: Mapping[str, Any]) -> int:
        """
        Insert an expense document.

        ``month`` defaults to the year-month of ``date`` when omitted.

        Returns:
            New expense id

        Raises:
            DatabaseError: If ``date`` is malformed or the insert fails
        """
        try:
            expense_date = parse_calendar_date(doc.get("date"))
        except CalendarParseError as e:
            raise DatabaseError("Expense date is invalid", details={"date": doc.get("date")}, original_error=e) from e
        record = ExpenseRecord.from_document(doc)
        month = record.month or str(YearMonth.from_date(expense_date))
        row = ExpenseDocument(
            registrant=record.registrant,
            date=expense_date.isoformat(),
            month=month,
            amount=record.amount,
            category=record.category,
            sub_category=record.sub_category,
            source=record.source,
            memo=record.memo or None,
        )
        return self._insert(row, "expense")

    def update_expense(self, expense_id: int, changes: Mapping[str, Any]) -> Optional[Tuple[str, str]]:
        """
        Apply field changes to an expense.

        A new ``date`` without an explicit ``month`` moves the expense to the
        date's year-month, as in :meth:`add_expense`.

        Returns:
            ``(previous_month, month)`` of the expense, both of which need cache
            invalidation, or None if the expense does not exist

        Raises:
            DatabaseError: If a new ``date`` is malformed or the update fails
        """
        if "date" in changes:
            try:
                expense_date = parse_calendar_date(changes["date"])
            except CalendarParseError as e:
                raise DatabaseError(
                    "Expense date is invalid",
                    details={"id": expense_id, "date": changes["date"]},
                    original_error=e
                ) from e
            changes = dict(changes, date=expense_date.isoformat())
            changes.setdefault("month", str(YearMonth.from_date(expense_date)))

        columns = {
            "registrant": "registrant",
            "date": "date",
            "month": "month",
            "amount": "amount",
            "category": "category",
            "subCategory": "sub_category",
            "source": "source",
            "memo": "memo",
        }
        session = self.get_session()
        try:
            row = session.get(ExpenseDocument, expense_id)
            if row is None:
                return None
            previous_month = row.month
            for key, value in changes.items():
                column = columns.get(key)
                if column is None:
                    continue
                if column == "amount":
                    value = round_half_up(coerce_amount(value))
                setattr(row, column, value)
            month = row.month
            session.commit()
            logger.info(f"Updated expense {expense_id} ({previous_month} -> {month})")
            return previous_month, month
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to update expense {expense_id}: {e}")
            raise DatabaseError("Failed to update expense", details={"id": expense_id}, original_error=e) from e
        finally:
            session.close()

    def delete_expense(self, expense_id: int) -> Optional[str]:
        """
        Delete an expense.

        Returns:
            The deleted expense's month, or None if it did not exist
        """
        session = self.get_session()
        try:
            row = session.get(ExpenseDocument, expense_id)
            if row is None:
                return None
            month = row.month
            session.delete(row)
            session.commit()
            logger.info(f"Deleted expense {expense_id} ({month})")
            return month
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to delete expense {expense_id}: {e}")
            raise DatabaseError("Failed to delete expense", details={"id": expense_id}, original_error=e) from e
        finally:
            session.close()

    def add_income(self, doc: Mapping[str, Any]) -> int:
        record = IncomeRecord.from_document(doc)
        row = IncomeDocument(
            registrant=record.registrant,
            date=record.date,
            amount=record.amount,
            source=record.source,
        )
        return self._insert(row, "income")

    def upsert_budget(self, doc: Mapping[str, Any]) -> str:
        """
        Create or replace a budget document.

        Args:
            doc: Document with ``month``, optional ``registrant`` and any of
                ``categoryBudgets`` / ``items`` / ``subBudgets``

        Returns:
            Budget document id
        """
        month = str(parse_year_month(doc.get("month")))
        registrant = str(doc.get("registrant") or ALL_REGISTRANTS)
        doc_id = budget_doc_id(month, registrant)
        session = self.get_session()
        try:
            row = session.get(BudgetDocument, doc_id)
            if row is None:
                row = BudgetDocument(doc_id=doc_id, month=month, registrant=registrant)
                session.add(row)
            row.category_budgets = doc.get("categoryBudgets")
            row.items = doc.get("items")
            row.sub_budgets = doc.get("subBudgets")
            session.commit()
            logger.info(f"Saved budget {doc_id}")
            return doc_id
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to save budget {doc_id}: {e}")
            raise DatabaseError("Failed to save budget", details={"doc_id": doc_id}, original_error=e) from e
        finally:
            session.close()

    def _insert(self, row: Base, kind: str) -> int:
        session = self.get_session()
        try:
            session.add(row)
            session.commit()
            new_id = row.id
            logger.debug(f"Inserted {kind} {new_id}")
            return new_id
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to insert {kind}: {e}")
            raise DatabaseError(f"Failed to insert {kind}", original_error=e) from e
        finally:
            session.close()
