import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import date as dt_date
from decimal import Decimal

import config
from domain.budget import BudgetSnapshot
from domain.errors import ValidationError
from domain.goals import GOAL_FREQUENCIES, Goal, months_to_target
from domain.reports import (
    GoalsStats,
    MonthlySummary,
    WalletReconciliation,
    aggregate_expenses_by_category,
    derived_wallet_balance,
    summarize_goals,
    summarize_period,
)
from domain.transactions import Postings, Transaction
from domain.validation import (
    ensure_choice,
    ensure_non_negative,
    ensure_positive,
    ensure_text,
    parse_amount,
    parse_ymd,
)
from domain.wallets import WALLET_TYPES, Wallet
from infrastructure.repositories import LedgerRepository

logger = logging.getLogger(__name__)


def _apply_postings(repository: LedgerRepository, postings: Postings) -> None:
    """Push signed deltas through the store's atomic increment procedures."""
    for wallet_id, delta in sorted(postings.wallets.items()):
        if delta:
            repository.adjust_wallet_balance(wallet_id, delta)
    if postings.goal_id is not None and postings.goal_delta:
        repository.adjust_goal_progress(postings.goal_id, postings.goal_delta)


def _active_goal(repository: LedgerRepository, owner_id: str, goal_id: int) -> Goal:
    goal = repository.get_goal(owner_id, goal_id)
    if not goal.is_active:
        raise ValidationError(f"Goal is not active: {goal_id}")
    return goal


class ApplyTransaction:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(
        self,
        owner_id: str,
        *,
        amount,
        category: str,
        type: str,
        wallet_id: int | None = None,
        goal_id: int | None = None,
        counterpart_wallet_id: int | None = None,
        description: str = "",
        date: str | dt_date | None = None,
        request_id: str | None = None,
    ) -> Transaction:
        """Insert a transaction and post its wallet/goal effects as one unit."""
        transaction = Transaction(
            owner_id=owner_id,
            amount=amount,
            category=category,
            type=type,
            wallet_id=wallet_id,
            goal_id=goal_id,
            counterpart_wallet_id=counterpart_wallet_id,
            description=description,
            date=date or dt_date.today(),
            request_id=request_id,
        )
        transaction.validate_links()

        with self._repository.atomic():
            if request_id is not None:
                existing = self._repository.find_transaction_by_request_id(owner_id, request_id)
                if existing is not None:
                    logger.info(
                        "Transaction replay ignored owner_id=%s request_id=%s id=%s",
                        owner_id,
                        request_id,
                        existing.id,
                    )
                    return existing
            for linked_wallet in (wallet_id, counterpart_wallet_id):
                if linked_wallet is not None:
                    self._repository.get_wallet(owner_id, linked_wallet)
            if goal_id is not None:
                _active_goal(self._repository, owner_id, goal_id)

            stored = self._repository.insert_transaction(transaction)
            _apply_postings(self._repository, stored.postings())

        logger.info(
            "Transaction applied id=%s owner_id=%s type=%s amount=%s wallet_id=%s goal_id=%s",
            stored.id,
            owner_id,
            stored.type,
            stored.amount,
            stored.wallet_id,
            stored.goal_id,
        )
        return stored


class EditTransaction:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(
        self,
        owner_id: str,
        transaction_id: int,
        *,
        amount=None,
        category: str | None = None,
        description: str | None = None,
        date: str | dt_date | None = None,
    ) -> Transaction:
        """Correct amount/category/description/date and post the difference."""
        with self._repository.atomic():
            current = self._repository.get_transaction(owner_id, transaction_id)
            edited = current.with_edits(
                amount=amount, category=category, description=description, date=date
            )
            delta = edited.postings().minus(current.postings())
            stored = self._repository.update_transaction(edited)
            _apply_postings(self._repository, delta)

        logger.info(
            "Transaction edited id=%s owner_id=%s amount=%s->%s",
            transaction_id,
            owner_id,
            current.amount,
            stored.amount,
        )
        return stored


class DeleteTransaction:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str, transaction_id: int) -> None:
        """Delete a transaction and reverse its wallet/goal effects."""
        with self._repository.atomic():
            current = self._repository.get_transaction(owner_id, transaction_id)
            self._repository.delete_transaction(owner_id, transaction_id)
            _apply_postings(self._repository, current.postings().reversed())
        logger.info(
            "Transaction deleted id=%s owner_id=%s type=%s amount=%s",
            transaction_id,
            owner_id,
            current.type,
            current.amount,
        )


class Contribute:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str, goal_id: int, amount) -> Goal:
        """Add (or withdraw, when negative) an amount to goal progress."""
        delta = parse_amount(amount)
        if delta == 0:
            raise ValidationError("Contribution amount cannot be zero")
        with self._repository.atomic():
            _active_goal(self._repository, owner_id, goal_id)
            new_amount = self._repository.adjust_goal_progress(goal_id, delta)
            goal = self._repository.get_goal(owner_id, goal_id)
        logger.info(
            "Goal contribution goal_id=%s owner_id=%s delta=%s current=%s",
            goal_id,
            owner_id,
            delta,
            new_amount,
        )
        return goal


class SubmitBudgetSnapshot:
    def __init__(
        self,
        repository: LedgerRepository,
        today: Callable[[], dt_date] = dt_date.today,
    ):
        self._repository = repository
        self._today = today

    def execute(self, owner_id: str, *, income, rent, shopping, other=None) -> BudgetSnapshot:
        """Record questionnaire answers, derived transactions and primary wallet balance."""
        snapshot = BudgetSnapshot.from_answers(
            owner_id, income=income, rent=rent, shopping=shopping, other=other
        )
        with self._repository.atomic():
            stored = self._repository.insert_snapshot(snapshot)
            derived = stored.derived_transactions(self._today())
            for transaction in derived:
                self._repository.insert_transaction(transaction)

            primary = self._repository.get_primary_wallet(owner_id)
            if primary is None:
                primary = self._repository.insert_wallet(
                    owner_id=owner_id,
                    name=config.PRIMARY_WALLET_NAME,
                    type="cash",
                    currency=config.DEFAULT_CURRENCY,
                    balance=stored.savings,
                    is_primary=True,
                )
            else:
                # replace, not add: the questionnaire redefines the known balance
                primary = self._repository.set_wallet_balance(owner_id, primary.id, stored.savings)

        logger.info(
            "Budget snapshot stored id=%s owner_id=%s savings=%s transactions=%s wallet_id=%s",
            stored.id,
            owner_id,
            stored.savings,
            len(derived),
            primary.id,
        )
        return stored


class LatestBudgetSnapshot:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str) -> BudgetSnapshot | None:
        snapshots = self._repository.list_snapshots(owner_id)
        return snapshots[0] if snapshots else None


class CreateWallet:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(
        self,
        owner_id: str,
        *,
        name: str,
        type: str = "cash",
        currency: str | None = None,
        opening_balance=0,
    ) -> Wallet:
        wallet = self._repository.insert_wallet(
            owner_id=owner_id,
            name=ensure_text(name, "name"),
            type=ensure_choice(type, WALLET_TYPES, "wallet type"),
            currency=(currency or config.DEFAULT_CURRENCY).upper(),
            balance=parse_amount(opening_balance, "opening_balance"),
        )
        logger.info(
            "Wallet created id=%s owner_id=%s name=%s type=%s opening_balance=%s",
            wallet.id,
            owner_id,
            wallet.name,
            wallet.type,
            wallet.opening_balance,
        )
        return wallet


class BootstrapAccount:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str) -> list[Wallet]:
        """Create the default wallet set unless the owner already has regular wallets."""
        with self._repository.atomic():
            existing = self._repository.list_wallets(owner_id)
            if any(not wallet.is_primary for wallet in existing):
                return existing
            for name, wallet_type in config.DEFAULT_WALLETS:
                self._repository.insert_wallet(
                    owner_id=owner_id,
                    name=name,
                    type=wallet_type,
                    currency=config.DEFAULT_CURRENCY,
                    balance=Decimal("0.00"),
                )
            wallets = self._repository.list_wallets(owner_id)
        logger.info("Account bootstrapped owner_id=%s wallets=%s", owner_id, len(wallets))
        return wallets


class GetWallets:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str) -> list[Wallet]:
        return self._repository.list_wallets(owner_id)


class RenameWallet:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str, wallet_id: int, name: str) -> Wallet:
        return self._repository.rename_wallet(owner_id, wallet_id, ensure_text(name, "name"))


class OverrideWalletBalance:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str, wallet_id: int, balance) -> Wallet:
        wallet = self._repository.set_wallet_balance(
            owner_id, wallet_id, parse_amount(balance, "balance")
        )
        logger.info(
            "Wallet balance overridden id=%s owner_id=%s balance=%s",
            wallet_id,
            owner_id,
            wallet.balance,
        )
        return wallet


class DeleteWallet:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str, wallet_id: int) -> None:
        """Delete a wallet; its transactions stay in the ledger without a wallet."""
        self._repository.delete_wallet(owner_id, wallet_id)
        logger.info("Wallet deleted id=%s owner_id=%s", wallet_id, owner_id)


class CalculateTotalBalance:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str) -> Decimal:
        return sum(
            (wallet.balance for wallet in self._repository.list_wallets(owner_id)),
            Decimal("0.00"),
        )


class ReconcileWallet:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str, wallet_id: int) -> WalletReconciliation:
        wallet = self._repository.get_wallet(owner_id, wallet_id)
        transactions = self._repository.transactions_for_wallet(owner_id, wallet_id)
        result = WalletReconciliation(
            wallet_id=wallet.id,
            stored_balance=wallet.balance,
            derived_balance=derived_wallet_balance(wallet, transactions),
        )
        if not result.is_consistent:
            logger.warning(
                "Wallet balance drift id=%s stored=%s derived=%s",
                wallet.id,
                result.stored_balance,
                result.derived_balance,
            )
        return result


class CreateGoal:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(
        self,
        owner_id: str,
        *,
        title: str,
        target_amount,
        target_date: str | dt_date | None = None,
        frequency: str | None = None,
        auto_contribution=0,
    ) -> Goal:
        goal = self._repository.insert_goal(
            Goal(
                id=0,
                owner_id=owner_id,
                title=ensure_text(title, "title"),
                target_amount=ensure_positive(target_amount, "target_amount"),
                target_date=parse_ymd(target_date) if target_date else None,
                frequency=(
                    ensure_choice(frequency, GOAL_FREQUENCIES, "frequency") if frequency else None
                ),
                auto_contribution=ensure_non_negative(auto_contribution, "auto_contribution"),
            )
        )
        logger.info(
            "Goal created id=%s owner_id=%s target=%s", goal.id, owner_id, goal.target_amount
        )
        return goal


class UpdateGoal:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(
        self,
        owner_id: str,
        goal_id: int,
        *,
        title: str | None = None,
        target_amount=None,
        target_date: str | dt_date | None = None,
        frequency: str | None = None,
        auto_contribution=None,
        current_amount=None,
    ) -> Goal:
        """Edit goal settings; current_amount is a corrective absolute edit."""
        changes: dict = {}
        if title is not None:
            changes["title"] = ensure_text(title, "title")
        if target_amount is not None:
            changes["target_amount"] = ensure_positive(target_amount, "target_amount")
        if target_date is not None:
            changes["target_date"] = parse_ymd(target_date)
        if frequency is not None:
            changes["frequency"] = ensure_choice(frequency, GOAL_FREQUENCIES, "frequency")
        if auto_contribution is not None:
            changes["auto_contribution"] = ensure_non_negative(
                auto_contribution, "auto_contribution"
            )
        if current_amount is not None:
            changes["current_amount"] = ensure_non_negative(current_amount, "current_amount")
        with self._repository.atomic():
            goal = self._repository.get_goal(owner_id, goal_id)
            updated = self._repository.update_goal(replace(goal, **changes))
        if "current_amount" in changes:
            logger.info(
                "Goal progress corrected id=%s owner_id=%s %s->%s",
                goal_id,
                owner_id,
                goal.current_amount,
                updated.current_amount,
            )
        return updated


class DeactivateGoal:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str, goal_id: int) -> Goal:
        with self._repository.atomic():
            goal = self._repository.get_goal(owner_id, goal_id)
            updated = self._repository.update_goal(replace(goal, is_active=False))
        logger.info("Goal deactivated id=%s owner_id=%s", goal_id, owner_id)
        return updated


class GetActiveGoals:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str) -> list[Goal]:
        return self._repository.list_goals(owner_id, active=True)


class GetCompletedGoals:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str) -> list[Goal]:
        return [goal for goal in self._repository.list_goals(owner_id) if goal.is_completed]


@dataclass(frozen=True)
class GoalOutlook:
    goal: Goal
    progress_percent: float
    months_to_target: int | None


class GetGoalOutlook:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str, goal_id: int, monthly_contribution=None) -> GoalOutlook:
        goal = self._repository.get_goal(owner_id, goal_id)
        if monthly_contribution is None:
            monthly = goal.auto_contribution
        else:
            monthly = parse_amount(monthly_contribution, "monthly_contribution")
        return GoalOutlook(
            goal=goal,
            progress_percent=goal.progress,
            months_to_target=months_to_target(goal.current_amount, goal.target_amount, monthly),
        )


class CalculateMonthlySummary:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str, start: str | dt_date, end: str | dt_date) -> MonthlySummary:
        start_date = parse_ymd(start)
        end_date = parse_ymd(end)
        if end_date < start_date:
            raise ValidationError("Period end date cannot be earlier than period start date")
        transactions = self._repository.list_transactions(owner_id, start=start_date, end=end_date)
        return summarize_period(transactions, start_date, end_date)


class CalculateGoalsStats:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str) -> GoalsStats:
        return summarize_goals(self._repository.list_goals(owner_id))


class GetTransactionsByPeriod:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str, start: str | dt_date, end: str | dt_date) -> list[Transaction]:
        return self._repository.list_transactions(
            owner_id, start=parse_ymd(start), end=parse_ymd(end)
        )


class GetTransactionsByCategory:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str, category: str) -> list[Transaction]:
        return self._repository.list_transactions(
            owner_id, category=ensure_text(category, "category")
        )


class GetRecentTransactions:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(self, owner_id: str, limit: int = 10) -> list[Transaction]:
        if int(limit) <= 0:
            raise ValidationError("limit must be positive")
        return self._repository.list_transactions(owner_id, limit=int(limit))


class CalculateExpensesByCategory:
    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    def execute(
        self,
        owner_id: str,
        start: str | dt_date | None = None,
        end: str | dt_date | None = None,
    ) -> dict[str, Decimal]:
        transactions = self._repository.list_transactions(
            owner_id,
            start=parse_ymd(start) if start else None,
            end=parse_ymd(end) if end else None,
        )
        return aggregate_expenses_by_category(transactions)


def require_owner(owner_id) -> str:
    owner = str(owner_id or "").strip()
    if not owner:
        raise ValidationError("owner_id is required")
    return owner
