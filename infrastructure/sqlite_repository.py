from __future__ import annotations

import functools
import logging
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import date as dt_date
from datetime import datetime
from decimal import Decimal

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

import config
from domain.budget import BudgetSnapshot
from domain.errors import ConsistencyError, NotFoundError, StoreUnavailableError, ValidationError
from domain.goals import Goal
from domain.transactions import Transaction
from domain.validation import from_cents, to_cents
from domain.wallets import Wallet
from infrastructure.repositories import LedgerRepository
from storage.events import ChangeEvent
from storage.sqlite_storage import SQLiteLedgerStore

logger = logging.getLogger(__name__)


def _translate_errors(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except sqlite3.IntegrityError as exc:
            raise ConsistencyError(f"Store rejected the change: {exc}") from exc
        except sqlite3.OperationalError as exc:
            raise StoreUnavailableError(f"Store unavailable: {exc}") from exc

    return wrapper


# Reads are safe to repeat; writes are never retried here.
_read_retry = retry(
    retry=retry_if_exception_type(StoreUnavailableError),
    stop=stop_after_attempt(config.READ_RETRY_ATTEMPTS),
    wait=wait_exponential(
        multiplier=config.READ_RETRY_MIN_WAIT,
        min=config.READ_RETRY_MIN_WAIT,
        max=config.READ_RETRY_MAX_WAIT,
    ),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


def _read(func):
    return _read_retry(_translate_errors(func))


def _timestamp(value) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(str(value))


def _date_as_text(value: dt_date | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, dt_date):
        return value.isoformat()
    return str(value)


class SQLiteLedgerRepository(LedgerRepository):
    """LedgerRepository implementation backed by SQLiteLedgerStore."""

    def __init__(self, store: SQLiteLedgerStore) -> None:
        self._store = store

    @classmethod
    def open(
        cls, db_path: str, schema_path: str | None = None, timeout: float | None = None
    ) -> "SQLiteLedgerRepository":
        store = SQLiteLedgerStore(
            db_path, timeout=config.BUSY_TIMEOUT if timeout is None else timeout
        )
        store.initialize_schema(schema_path)
        return cls(store)

    @property
    def store(self) -> SQLiteLedgerStore:
        return self._store

    def close(self) -> None:
        self._store.close()

    @contextmanager
    def atomic(self) -> Iterator[None]:
        try:
            with self._store.atomic():
                yield
        except sqlite3.IntegrityError as exc:
            raise ConsistencyError(f"Store rejected the change: {exc}") from exc
        except sqlite3.OperationalError as exc:
            raise StoreUnavailableError(f"Store unavailable: {exc}") from exc

    def subscribe(
        self, table: str, owner_id: str, handler: Callable[[ChangeEvent], None]
    ) -> Callable[[], None]:
        return self._store.subscribe(table, owner_id, handler)

    # Wallets

    @staticmethod
    def _wallet_from_row(row: dict) -> Wallet:
        return Wallet(
            id=int(row["id"]),
            owner_id=str(row["owner_id"]),
            name=str(row["name"]),
            type=str(row["type"]),
            balance=from_cents(row["balance_cents"]),
            currency=str(row["currency"]),
            opening_balance=from_cents(row["opening_balance_cents"]),
            is_primary=bool(row["is_primary"]),
            created_at=_timestamp(row["created_at"]),
        )

    @_translate_errors
    def insert_wallet(
        self,
        *,
        owner_id: str,
        name: str,
        type: str,
        currency: str,
        balance: Decimal,
        is_primary: bool = False,
    ) -> Wallet:
        with self.atomic():
            wallet_id = self._store.insert(
                "wallets",
                {
                    "owner_id": str(owner_id),
                    "name": str(name),
                    "type": str(type),
                    "balance_cents": to_cents(balance),
                    "opening_balance_cents": to_cents(balance),
                    "currency": str(currency).upper(),
                    "is_primary": int(bool(is_primary)),
                },
            )
            return self.get_wallet(owner_id, wallet_id)

    @_read
    def get_wallet(self, owner_id: str, wallet_id: int) -> Wallet:
        rows = self._store.select(
            "wallets", filters={"id": int(wallet_id), "owner_id": str(owner_id)}
        )
        if not rows:
            raise NotFoundError(f"Wallet not found: {wallet_id}")
        return self._wallet_from_row(rows[0])

    @_read
    def list_wallets(self, owner_id: str) -> list[Wallet]:
        rows = self._store.select(
            "wallets", filters={"owner_id": str(owner_id)}, order_by=("-created_at", "-id")
        )
        return [self._wallet_from_row(row) for row in rows]

    @_read
    def get_primary_wallet(self, owner_id: str) -> Wallet | None:
        rows = self._store.select(
            "wallets", filters={"owner_id": str(owner_id), "is_primary": 1}, limit=1
        )
        return self._wallet_from_row(rows[0]) if rows else None

    @_translate_errors
    def rename_wallet(self, owner_id: str, wallet_id: int, name: str) -> Wallet:
        with self.atomic():
            updated = self._store.update(
                "wallets",
                {"name": str(name)},
                {"id": int(wallet_id), "owner_id": str(owner_id)},
            )
            if not updated:
                raise NotFoundError(f"Wallet not found: {wallet_id}")
            return self.get_wallet(owner_id, wallet_id)

    @_translate_errors
    def adjust_wallet_balance(self, wallet_id: int, delta: Decimal) -> Decimal:
        new_balance = self._store.update_wallet_balance(int(wallet_id), to_cents(delta))
        if new_balance is None:
            raise ConsistencyError(f"Wallet disappeared during balance update: {wallet_id}")
        return from_cents(new_balance)

    @_translate_errors
    def set_wallet_balance(self, owner_id: str, wallet_id: int, balance: Decimal) -> Wallet:
        with self.atomic():
            wallet = self.get_wallet(owner_id, wallet_id)
            posted = sum(
                (
                    transaction.postings().wallets.get(wallet.id, Decimal("0.00"))
                    for transaction in self.transactions_for_wallet(owner_id, wallet.id)
                ),
                Decimal("0.00"),
            )
            self._store.update(
                "wallets",
                {
                    "balance_cents": to_cents(balance),
                    "opening_balance_cents": to_cents(Decimal(balance) - posted),
                },
                {"id": wallet.id, "owner_id": str(owner_id)},
            )
            return self.get_wallet(owner_id, wallet.id)

    @_translate_errors
    def delete_wallet(self, owner_id: str, wallet_id: int) -> None:
        with self.atomic():
            wallet = self.get_wallet(owner_id, wallet_id)
            for column in ("wallet_id", "counterpart_wallet_id"):
                self._store.update(
                    "transactions",
                    {column: None},
                    {"owner_id": str(owner_id), column: wallet.id},
                )
            self._store.delete("wallets", {"id": wallet.id, "owner_id": str(owner_id)})

    # Goals

    @staticmethod
    def _goal_from_row(row: dict) -> Goal:
        return Goal(
            id=int(row["id"]),
            owner_id=str(row["owner_id"]),
            title=str(row["title"]),
            target_amount=from_cents(row["target_amount_cents"]),
            current_amount=from_cents(row["current_amount_cents"]),
            target_date=dt_date.fromisoformat(row["target_date"]) if row["target_date"] else None,
            frequency=row["frequency"],
            auto_contribution=from_cents(row["auto_contribution_cents"]),
            is_active=bool(row["is_active"]),
            created_at=_timestamp(row["created_at"]),
        )

    @staticmethod
    def _goal_values(goal: Goal) -> dict:
        return {
            "owner_id": str(goal.owner_id),
            "title": str(goal.title),
            "target_amount_cents": to_cents(goal.target_amount),
            "current_amount_cents": to_cents(goal.current_amount),
            "target_date": _date_as_text(goal.target_date),
            "frequency": goal.frequency,
            "auto_contribution_cents": to_cents(goal.auto_contribution),
            "is_active": int(bool(goal.is_active)),
        }

    @_translate_errors
    def insert_goal(self, goal: Goal) -> Goal:
        with self.atomic():
            goal_id = self._store.insert("goals", self._goal_values(goal))
            return self.get_goal(goal.owner_id, goal_id)

    @_read
    def get_goal(self, owner_id: str, goal_id: int) -> Goal:
        rows = self._store.select("goals", filters={"id": int(goal_id), "owner_id": str(owner_id)})
        if not rows:
            raise NotFoundError(f"Goal not found: {goal_id}")
        return self._goal_from_row(rows[0])

    @_read
    def list_goals(self, owner_id: str, *, active: bool | None = None) -> list[Goal]:
        filters: dict = {"owner_id": str(owner_id)}
        if active is not None:
            filters["is_active"] = int(active)
        rows = self._store.select("goals", filters=filters, order_by=("-created_at", "-id"))
        return [self._goal_from_row(row) for row in rows]

    @_translate_errors
    def update_goal(self, goal: Goal) -> Goal:
        with self.atomic():
            updated = self._store.update(
                "goals",
                self._goal_values(goal),
                {"id": int(goal.id), "owner_id": str(goal.owner_id)},
            )
            if not updated:
                raise NotFoundError(f"Goal not found: {goal.id}")
            return self.get_goal(goal.owner_id, goal.id)

    @_translate_errors
    def adjust_goal_progress(self, goal_id: int, delta: Decimal) -> Decimal:
        with self.atomic():
            new_amount = self._store.update_goal_progress(int(goal_id), to_cents(delta))
            if new_amount is not None:
                return from_cents(new_amount)
            if not self._store.select("goals", filters={"id": int(goal_id)}):
                raise NotFoundError(f"Goal not found: {goal_id}")
            raise ValidationError("Goal progress cannot go below zero")

    # Transactions

    @staticmethod
    def _transaction_from_row(row: dict) -> Transaction:
        return Transaction(
            id=int(row["id"]),
            owner_id=str(row["owner_id"]),
            wallet_id=row["wallet_id"],
            counterpart_wallet_id=row["counterpart_wallet_id"],
            goal_id=row["goal_id"],
            amount=from_cents(row["amount_cents"]),
            category=str(row["category"]),
            type=str(row["type"]),
            description=str(row["description"] or ""),
            date=str(row["date"]),
            request_id=row["request_id"],
            created_at=_timestamp(row["created_at"]),
        )

    @_translate_errors
    def insert_transaction(self, transaction: Transaction) -> Transaction:
        with self.atomic():
            transaction_id = self._store.insert(
                "transactions",
                {
                    "owner_id": str(transaction.owner_id),
                    "wallet_id": transaction.wallet_id,
                    "counterpart_wallet_id": transaction.counterpart_wallet_id,
                    "goal_id": transaction.goal_id,
                    "amount_cents": to_cents(transaction.amount),
                    "category": transaction.category,
                    "type": transaction.type,
                    "description": transaction.description,
                    "date": _date_as_text(transaction.date),
                    "request_id": transaction.request_id,
                },
            )
            return self.get_transaction(transaction.owner_id, transaction_id)

    @_read
    def get_transaction(self, owner_id: str, transaction_id: int) -> Transaction:
        rows = self._store.select(
            "transactions", filters={"id": int(transaction_id), "owner_id": str(owner_id)}
        )
        if not rows:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return self._transaction_from_row(rows[0])

    @_read
    def find_transaction_by_request_id(
        self, owner_id: str, request_id: str
    ) -> Transaction | None:
        rows = self._store.select(
            "transactions",
            filters={"owner_id": str(owner_id), "request_id": str(request_id)},
            limit=1,
        )
        return self._transaction_from_row(rows[0]) if rows else None

    @_read
    def list_transactions(
        self,
        owner_id: str,
        *,
        start: dt_date | None = None,
        end: dt_date | None = None,
        category: str | None = None,
        limit: int | None = None,
        newest_first: bool = True,
    ) -> list[Transaction]:
        filters: dict = {"owner_id": str(owner_id)}
        if category is not None:
            filters["category"] = str(category)
        ranges = {}
        if start is not None or end is not None:
            ranges["date"] = (_date_as_text(start), _date_as_text(end))
        if newest_first:
            order_by = ("-date", "-created_at", "-id")
        else:
            order_by = ("date", "created_at", "id")
        rows = self._store.select(
            "transactions", filters=filters, ranges=ranges, order_by=order_by, limit=limit
        )
        return [self._transaction_from_row(row) for row in rows]

    @_read
    def transactions_for_wallet(self, owner_id: str, wallet_id: int) -> list[Transaction]:
        rows: dict[int, dict] = {}
        for column in ("wallet_id", "counterpart_wallet_id"):
            for row in self._store.select(
                "transactions",
                filters={"owner_id": str(owner_id), column: int(wallet_id)},
            ):
                rows[int(row["id"])] = row
        return [self._transaction_from_row(rows[key]) for key in sorted(rows)]

    @_translate_errors
    def update_transaction(self, transaction: Transaction) -> Transaction:
        with self.atomic():
            updated = self._store.update(
                "transactions",
                {
                    "amount_cents": to_cents(transaction.amount),
                    "category": transaction.category,
                    "description": transaction.description,
                    "date": _date_as_text(transaction.date),
                },
                {"id": int(transaction.id), "owner_id": str(transaction.owner_id)},
            )
            if not updated:
                raise NotFoundError(f"Transaction not found: {transaction.id}")
            return self.get_transaction(transaction.owner_id, transaction.id)

    @_translate_errors
    def delete_transaction(self, owner_id: str, transaction_id: int) -> None:
        deleted = self._store.delete(
            "transactions", {"id": int(transaction_id), "owner_id": str(owner_id)}
        )
        if not deleted:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

    # Budget snapshots

    @staticmethod
    def _snapshot_from_row(row: dict) -> BudgetSnapshot:
        return BudgetSnapshot(
            id=int(row["id"]),
            owner_id=str(row["owner_id"]),
            monthly_income=from_cents(row["monthly_income_cents"]),
            rent_expense=from_cents(row["rent_expense_cents"]),
            shopping_expense=from_cents(row["shopping_expense_cents"]),
            other_expenses=from_cents(row["other_expenses_cents"]),
            created_at=_timestamp(row["created_at"]),
        )

    @_translate_errors
    def insert_snapshot(self, snapshot: BudgetSnapshot) -> BudgetSnapshot:
        with self.atomic():
            snapshot_id = self._store.insert(
                "financial_questionnaires",
                {
                    "owner_id": str(snapshot.owner_id),
                    "monthly_income_cents": to_cents(snapshot.monthly_income),
                    "rent_expense_cents": to_cents(snapshot.rent_expense),
                    "shopping_expense_cents": to_cents(snapshot.shopping_expense),
                    "other_expenses_cents": to_cents(snapshot.other_expenses),
                    "total_expenses_cents": to_cents(snapshot.total_expenses),
                    "savings_cents": to_cents(snapshot.savings),
                },
            )
            rows = self._store.select("financial_questionnaires", filters={"id": snapshot_id})
            return self._snapshot_from_row(rows[0])

    @_read
    def list_snapshots(self, owner_id: str) -> list[BudgetSnapshot]:
        rows = self._store.select(
            "financial_questionnaires",
            filters={"owner_id": str(owner_id)},
            order_by=("-created_at", "-id"),
        )
        return [self._snapshot_from_row(row) for row in rows]
