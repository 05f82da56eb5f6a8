from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import date as dt_date
from decimal import Decimal

from domain.budget import BudgetSnapshot
from domain.goals import Goal
from domain.transactions import Transaction
from domain.wallets import Wallet
from storage.events import ChangeEvent


class LedgerRepository(ABC):
    """Owner-scoped access to wallets, goals, transactions and snapshots."""

    @abstractmethod
    def atomic(self) -> AbstractContextManager[None]:
        """Open a transactional boundary; nested calls join the outer one."""
        pass

    @abstractmethod
    def subscribe(
        self, table: str, owner_id: str, handler: Callable[[ChangeEvent], None]
    ) -> Callable[[], None]:
        """Register a change handler. Returns an unsubscribe callable."""
        pass

    @abstractmethod
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
        pass

    @abstractmethod
    def get_wallet(self, owner_id: str, wallet_id: int) -> Wallet:
        """Raise NotFoundError when missing or owned by someone else."""
        pass

    @abstractmethod
    def list_wallets(self, owner_id: str) -> list[Wallet]:
        pass

    @abstractmethod
    def get_primary_wallet(self, owner_id: str) -> Wallet | None:
        pass

    @abstractmethod
    def rename_wallet(self, owner_id: str, wallet_id: int, name: str) -> Wallet:
        pass

    @abstractmethod
    def adjust_wallet_balance(self, wallet_id: int, delta: Decimal) -> Decimal:
        """Atomically add a signed delta and return the new balance."""
        pass

    @abstractmethod
    def set_wallet_balance(self, owner_id: str, wallet_id: int, balance: Decimal) -> Wallet:
        """Replace the balance, moving the difference into the opening balance."""
        pass

    @abstractmethod
    def delete_wallet(self, owner_id: str, wallet_id: int) -> None:
        """Delete the wallet and detach its transactions."""
        pass

    @abstractmethod
    def insert_goal(self, goal: Goal) -> Goal:
        pass

    @abstractmethod
    def get_goal(self, owner_id: str, goal_id: int) -> Goal:
        pass

    @abstractmethod
    def list_goals(self, owner_id: str, *, active: bool | None = None) -> list[Goal]:
        """Goals newest first, optionally filtered by the active flag."""
        pass

    @abstractmethod
    def update_goal(self, goal: Goal) -> Goal:
        pass

    @abstractmethod
    def adjust_goal_progress(self, goal_id: int, delta: Decimal) -> Decimal:
        """Atomically add a signed delta; refuse to go below zero."""
        pass

    @abstractmethod
    def insert_transaction(self, transaction: Transaction) -> Transaction:
        pass

    @abstractmethod
    def get_transaction(self, owner_id: str, transaction_id: int) -> Transaction:
        pass

    @abstractmethod
    def find_transaction_by_request_id(
        self, owner_id: str, request_id: str
    ) -> Transaction | None:
        pass

    @abstractmethod
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
        pass

    @abstractmethod
    def transactions_for_wallet(self, owner_id: str, wallet_id: int) -> list[Transaction]:
        """Transactions posting to the wallet as source or destination."""
        pass

    @abstractmethod
    def update_transaction(self, transaction: Transaction) -> Transaction:
        pass

    @abstractmethod
    def delete_transaction(self, owner_id: str, transaction_id: int) -> None:
        pass

    @abstractmethod
    def insert_snapshot(self, snapshot: BudgetSnapshot) -> BudgetSnapshot:
        pass

    @abstractmethod
    def list_snapshots(self, owner_id: str) -> list[BudgetSnapshot]:
        """Snapshots newest first."""
        pass
