from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date as dt_date
from typing import Any

from app.use_cases import (
    ApplyTransaction,
    BootstrapAccount,
    CalculateExpensesByCategory,
    CalculateGoalsStats,
    CalculateMonthlySummary,
    CalculateTotalBalance,
    Contribute,
    CreateGoal,
    CreateWallet,
    DeactivateGoal,
    DeleteTransaction,
    DeleteWallet,
    EditTransaction,
    GetActiveGoals,
    GetCompletedGoals,
    GetGoalOutlook,
    GetRecentTransactions,
    GetTransactionsByCategory,
    GetTransactionsByPeriod,
    GetWallets,
    LatestBudgetSnapshot,
    OverrideWalletBalance,
    ReconcileWallet,
    RenameWallet,
    SubmitBudgetSnapshot,
    UpdateGoal,
    require_owner,
)
from domain.errors import DomainError
from infrastructure.repositories import LedgerRepository
from storage.events import ChangeEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Result:
    """Outcome of a service call: data on success, error message and kind otherwise."""

    ok: bool
    data: Any = None
    error: str | None = None
    kind: str | None = None

    @classmethod
    def success(cls, data: Any = None) -> Result:
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: str, kind: str) -> Result:
        return cls(ok=False, error=error, kind=kind)


class LedgerService:
    """Entry point for callers; domain failures come back as failed Results."""

    def __init__(
        self,
        repository: LedgerRepository,
        today: Callable[[], dt_date] = dt_date.today,
    ) -> None:
        self._repository = repository
        self._today = today

    @property
    def repository(self) -> LedgerRepository:
        return self._repository

    def _run(self, operation: str, owner_id, call: Callable[[str], Any]) -> Result:
        try:
            owner = require_owner(owner_id)
            return Result.success(call(owner))
        except DomainError as exc:
            logger.warning(
                "Operation rejected operation=%s owner_id=%s kind=%s error=%s",
                operation,
                owner_id,
                exc.kind,
                exc,
            )
            return Result.failure(str(exc), exc.kind)
        except Exception as exc:
            logger.exception("Operation failed operation=%s owner_id=%s", operation, owner_id)
            return Result.failure(str(exc) or type(exc).__name__, "internal_error")

    # transactions

    def apply_transaction(self, owner_id: str, **fields) -> Result:
        return self._run(
            "apply_transaction",
            owner_id,
            lambda owner: ApplyTransaction(self._repository).execute(owner, **fields),
        )

    def edit_transaction(self, owner_id: str, transaction_id: int, **changes) -> Result:
        return self._run(
            "edit_transaction",
            owner_id,
            lambda owner: EditTransaction(self._repository).execute(
                owner, transaction_id, **changes
            ),
        )

    def delete_transaction(self, owner_id: str, transaction_id: int) -> Result:
        return self._run(
            "delete_transaction",
            owner_id,
            lambda owner: DeleteTransaction(self._repository).execute(owner, transaction_id),
        )

    # goals

    def contribute(self, owner_id: str, goal_id: int, amount) -> Result:
        return self._run(
            "contribute",
            owner_id,
            lambda owner: Contribute(self._repository).execute(owner, goal_id, amount),
        )

    def create_goal(self, owner_id: str, **fields) -> Result:
        return self._run(
            "create_goal",
            owner_id,
            lambda owner: CreateGoal(self._repository).execute(owner, **fields),
        )

    def update_goal(self, owner_id: str, goal_id: int, **changes) -> Result:
        return self._run(
            "update_goal",
            owner_id,
            lambda owner: UpdateGoal(self._repository).execute(owner, goal_id, **changes),
        )

    def deactivate_goal(self, owner_id: str, goal_id: int) -> Result:
        return self._run(
            "deactivate_goal",
            owner_id,
            lambda owner: DeactivateGoal(self._repository).execute(owner, goal_id),
        )

    def active_goals(self, owner_id: str) -> Result:
        return self._run(
            "active_goals", owner_id, lambda owner: GetActiveGoals(self._repository).execute(owner)
        )

    def completed_goals(self, owner_id: str) -> Result:
        return self._run(
            "completed_goals",
            owner_id,
            lambda owner: GetCompletedGoals(self._repository).execute(owner),
        )

    def goal_outlook(self, owner_id: str, goal_id: int, monthly_contribution=None) -> Result:
        return self._run(
            "goal_outlook",
            owner_id,
            lambda owner: GetGoalOutlook(self._repository).execute(
                owner, goal_id, monthly_contribution
            ),
        )

    # questionnaire

    def submit_budget_snapshot(
        self, owner_id: str, *, income, rent, shopping, other=None
    ) -> Result:
        return self._run(
            "submit_budget_snapshot",
            owner_id,
            lambda owner: SubmitBudgetSnapshot(self._repository, today=self._today).execute(
                owner, income=income, rent=rent, shopping=shopping, other=other
            ),
        )

    def latest_budget_snapshot(self, owner_id: str) -> Result:
        return self._run(
            "latest_budget_snapshot",
            owner_id,
            lambda owner: LatestBudgetSnapshot(self._repository).execute(owner),
        )

    # reports

    def monthly_summary(self, owner_id: str, start, end) -> Result:
        return self._run(
            "monthly_summary",
            owner_id,
            lambda owner: CalculateMonthlySummary(self._repository).execute(owner, start, end),
        )

    def goals_stats(self, owner_id: str) -> Result:
        return self._run(
            "goals_stats",
            owner_id,
            lambda owner: CalculateGoalsStats(self._repository).execute(owner),
        )

    def transactions_by_period(self, owner_id: str, start, end) -> Result:
        return self._run(
            "transactions_by_period",
            owner_id,
            lambda owner: GetTransactionsByPeriod(self._repository).execute(owner, start, end),
        )

    def transactions_by_category(self, owner_id: str, category: str) -> Result:
        return self._run(
            "transactions_by_category",
            owner_id,
            lambda owner: GetTransactionsByCategory(self._repository).execute(owner, category),
        )

    def recent_transactions(self, owner_id: str, limit: int = 10) -> Result:
        return self._run(
            "recent_transactions",
            owner_id,
            lambda owner: GetRecentTransactions(self._repository).execute(owner, limit),
        )

    def expenses_by_category(self, owner_id: str, start=None, end=None) -> Result:
        return self._run(
            "expenses_by_category",
            owner_id,
            lambda owner: CalculateExpensesByCategory(self._repository).execute(
                owner, start, end
            ),
        )

    def total_balance(self, owner_id: str) -> Result:
        return self._run(
            "total_balance",
            owner_id,
            lambda owner: CalculateTotalBalance(self._repository).execute(owner),
        )

    def reconcile_wallet(self, owner_id: str, wallet_id: int) -> Result:
        return self._run(
            "reconcile_wallet",
            owner_id,
            lambda owner: ReconcileWallet(self._repository).execute(owner, wallet_id),
        )

    # wallets

    def create_wallet(self, owner_id: str, **fields) -> Result:
        return self._run(
            "create_wallet",
            owner_id,
            lambda owner: CreateWallet(self._repository).execute(owner, **fields),
        )

    def bootstrap_account(self, owner_id: str) -> Result:
        return self._run(
            "bootstrap_account",
            owner_id,
            lambda owner: BootstrapAccount(self._repository).execute(owner),
        )

    def list_wallets(self, owner_id: str) -> Result:
        return self._run(
            "list_wallets", owner_id, lambda owner: GetWallets(self._repository).execute(owner)
        )

    def rename_wallet(self, owner_id: str, wallet_id: int, name: str) -> Result:
        return self._run(
            "rename_wallet",
            owner_id,
            lambda owner: RenameWallet(self._repository).execute(owner, wallet_id, name),
        )

    def override_wallet_balance(self, owner_id: str, wallet_id: int, balance) -> Result:
        return self._run(
            "override_wallet_balance",
            owner_id,
            lambda owner: OverrideWalletBalance(self._repository).execute(
                owner, wallet_id, balance
            ),
        )

    def delete_wallet(self, owner_id: str, wallet_id: int) -> Result:
        return self._run(
            "delete_wallet",
            owner_id,
            lambda owner: DeleteWallet(self._repository).execute(owner, wallet_id),
        )

    # notifications

    def subscribe(
        self, table: str, owner_id: str, handler: Callable[[ChangeEvent], None]
    ) -> Callable[[], None]:
        return self._repository.subscribe(table, owner_id, handler)
