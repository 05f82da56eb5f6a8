from __future__ import annotations

import sqlite3
from datetime import date
from decimal import Decimal
from unittest.mock import Mock, patch

import pytest

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
    LatestBudgetSnapshot,
    OverrideWalletBalance,
    ReconcileWallet,
    RenameWallet,
    SubmitBudgetSnapshot,
    UpdateGoal,
)
from domain.errors import NotFoundError, StoreUnavailableError, ValidationError
from domain.goals import Goal
from infrastructure.repositories import LedgerRepository
from infrastructure.sqlite_repository import SQLiteLedgerRepository

TODAY = date(2026, 3, 15)


@pytest.fixture
def repo(tmp_path):
    repository = SQLiteLedgerRepository.open(str(tmp_path / "ledger.db"))
    yield repository
    repository.close()


def _wallet(repo, name="Cash", opening_balance=0, owner="u1"):
    return CreateWallet(repo).execute(owner, name=name, opening_balance=opening_balance)


def _goal(repo, target=1000, owner="u1"):
    return CreateGoal(repo).execute(owner, title="Trip", target_amount=target)


def _apply(repo, owner="u1", **fields):
    fields.setdefault("date", "2026-03-01")
    return ApplyTransaction(repo).execute(owner, **fields)


def _assert_reconciled(repo, wallet_id, owner="u1"):
    result = ReconcileWallet(repo).execute(owner, wallet_id)
    assert result.is_consistent, result


def test_income_expense_delete_scenario(repo):
    wallet = _wallet(repo)
    _apply(repo, amount=500, category="Salary", type="income", wallet_id=wallet.id)
    assert repo.get_wallet("u1", wallet.id).balance == Decimal("500.00")

    expense = _apply(repo, amount=120, category="Food", type="expense", wallet_id=wallet.id)
    assert repo.get_wallet("u1", wallet.id).balance == Decimal("380.00")

    DeleteTransaction(repo).execute("u1", expense.id)
    assert repo.get_wallet("u1", wallet.id).balance == Decimal("500.00")
    with pytest.raises(NotFoundError):
        repo.get_transaction("u1", expense.id)
    _assert_reconciled(repo, wallet.id)


def test_goal_contribution_scenario(repo):
    goal = _goal(repo, target=1000)

    goal = Contribute(repo).execute("u1", goal.id, 250)
    assert goal.current_amount == Decimal("250.00")
    assert goal.progress == 25.0

    goal = Contribute(repo).execute("u1", goal.id, 900)
    assert goal.current_amount == Decimal("1150.00")
    assert goal.progress == 100.0
    assert goal.is_completed


def test_questionnaire_scenario(repo):
    snapshot = SubmitBudgetSnapshot(repo, today=lambda: TODAY).execute(
        "u1", income=3000, rent=900, shopping=400, other=0
    )
    assert snapshot.total_expenses == Decimal("1300.00")
    assert snapshot.savings == Decimal("1700.00")

    transactions = repo.list_transactions("u1", newest_first=False)
    assert sorted((t.type, t.category, t.amount) for t in transactions) == [
        ("expense", "Housing", Decimal("900.00")),
        ("expense", "Shopping", Decimal("400.00")),
        ("income", "Salary", Decimal("3000.00")),
    ]
    assert all(t.date == TODAY and t.wallet_id is None for t in transactions)

    primary = repo.get_primary_wallet("u1")
    assert primary.name == "Main wallet"
    assert primary.type == "cash"
    assert primary.currency == "BRL"
    assert primary.balance == Decimal("1700.00")


def test_second_questionnaire_replaces_primary_balance(repo):
    submit = SubmitBudgetSnapshot(repo, today=lambda: TODAY)
    submit.execute("u1", income=3000, rent=900, shopping=400)
    second = submit.execute("u1", income=2000, rent=500, shopping=300, other=200)

    primary = repo.get_primary_wallet("u1")
    assert primary.balance == Decimal("1000.00")
    assert len(repo.list_snapshots("u1")) == 2
    assert len(repo.list_transactions("u1")) == 3 + 4
    assert LatestBudgetSnapshot(repo).execute("u1") == second
    assert len([w for w in repo.list_wallets("u1") if w.is_primary]) == 1


def test_questionnaire_reuses_existing_primary_wallet_and_stays_reconciled(repo):
    submit = SubmitBudgetSnapshot(repo, today=lambda: TODAY)
    submit.execute("u1", income=100, rent=0, shopping=0)
    primary = repo.get_primary_wallet("u1")
    _apply(repo, amount=30, category="Food", type="expense", wallet_id=primary.id)

    submit.execute("u1", income=500, rent=100, shopping=0)
    primary = repo.get_primary_wallet("u1")
    assert primary.balance == Decimal("400.00")
    _assert_reconciled(repo, primary.id)


def test_questionnaire_rejects_negative_answers_without_side_effects(repo):
    with pytest.raises(ValidationError):
        SubmitBudgetSnapshot(repo).execute("u1", income=1000, rent=-1, shopping=0)
    assert repo.list_snapshots("u1") == []
    assert repo.get_primary_wallet("u1") is None


def test_questionnaire_failure_rolls_back_everything(repo):
    real_insert = repo.store.insert

    def fail_on_wallet(table, values):
        if table == "wallets":
            raise sqlite3.OperationalError("disk full")
        return real_insert(table, values)

    with patch.object(repo.store, "insert", side_effect=fail_on_wallet):
        with pytest.raises(StoreUnavailableError):
            SubmitBudgetSnapshot(repo, today=lambda: TODAY).execute(
                "u1", income=3000, rent=900, shopping=400
            )
    assert repo.list_snapshots("u1") == []
    assert repo.list_transactions("u1") == []
    assert repo.get_primary_wallet("u1") is None


def test_edit_applies_only_the_delta(repo):
    wallet = _wallet(repo, opening_balance=100)
    tx = _apply(repo, amount=40, category="Food", type="expense", wallet_id=wallet.id)
    edited = EditTransaction(repo).execute("u1", tx.id, amount=55, category="Groceries")

    assert edited.amount == Decimal("55.00")
    assert edited.category == "Groceries"
    assert repo.get_wallet("u1", wallet.id).balance == Decimal("45.00")

    EditTransaction(repo).execute("u1", tx.id, description="weekly shop", date="2026-03-02")
    assert repo.get_wallet("u1", wallet.id).balance == Decimal("45.00")
    _assert_reconciled(repo, wallet.id)


def test_edit_income_adjusts_linked_goal(repo):
    wallet = _wallet(repo)
    goal = _goal(repo)
    tx = _apply(
        repo, amount=200, category="Bonus", type="income", wallet_id=wallet.id, goal_id=goal.id
    )
    assert repo.get_goal("u1", goal.id).current_amount == Decimal("200.00")

    EditTransaction(repo).execute("u1", tx.id, amount=150)
    assert repo.get_goal("u1", goal.id).current_amount == Decimal("150.00")
    assert repo.get_wallet("u1", wallet.id).balance == Decimal("150.00")

    DeleteTransaction(repo).execute("u1", tx.id)
    assert repo.get_goal("u1", goal.id).current_amount == Decimal("0.00")


def test_reconciliation_after_mixed_sequence(repo):
    cash = _wallet(repo, name="Cash", opening_balance=1000)
    card = _wallet(repo, name="Card", opening_balance=50)
    goal = _goal(repo)
    apply = ApplyTransaction(repo)

    ids = []
    for amount, kind, extra in (
        (300, "income", {}),
        (80, "expense", {}),
        (120, "transfer", {"counterpart_wallet_id": card.id}),
        (60, "transfer", {"goal_id": goal.id}),
        (25, "expense", {}),
    ):
        tx = apply.execute(
            "u1",
            amount=amount,
            category="Misc",
            type=kind,
            wallet_id=cash.id,
            date="2026-03-01",
            **extra,
        )
        ids.append(tx.id)

    EditTransaction(repo).execute("u1", ids[1], amount=90)
    EditTransaction(repo).execute("u1", ids[2], amount=100)
    DeleteTransaction(repo).execute("u1", ids[4])

    assert repo.get_wallet("u1", cash.id).balance == Decimal("1050.00")
    assert repo.get_wallet("u1", card.id).balance == Decimal("150.00")
    assert repo.get_goal("u1", goal.id).current_amount == Decimal("60.00")
    _assert_reconciled(repo, cash.id)
    _assert_reconciled(repo, card.id)


def test_transfer_moves_money_between_wallets(repo):
    cash = _wallet(repo, name="Cash", opening_balance=200)
    card = _wallet(repo, name="Card")
    _apply(
        repo,
        amount=75,
        category="Top up",
        type="transfer",
        wallet_id=cash.id,
        counterpart_wallet_id=card.id,
    )
    assert repo.get_wallet("u1", cash.id).balance == Decimal("125.00")
    assert repo.get_wallet("u1", card.id).balance == Decimal("75.00")
    total = CalculateTotalBalance(repo).execute("u1")
    assert total == Decimal("200.00")


def test_transfer_requires_destination(repo):
    cash = _wallet(repo)
    with pytest.raises(ValidationError, match="destination"):
        _apply(repo, amount=10, category="Move", type="transfer", wallet_id=cash.id)


def test_expense_linked_to_goal_is_rejected(repo):
    wallet = _wallet(repo)
    goal = _goal(repo)
    with pytest.raises(ValidationError):
        _apply(
            repo, amount=10, category="Food", type="expense", wallet_id=wallet.id, goal_id=goal.id
        )
    assert repo.list_transactions("u1") == []


def test_foreign_wallet_and_goal_are_not_found(repo):
    theirs = _wallet(repo, owner="u2")
    their_goal = _goal(repo, owner="u2")
    with pytest.raises(NotFoundError):
        _apply(repo, amount=10, category="Food", type="expense", wallet_id=theirs.id)
    with pytest.raises(NotFoundError):
        _apply(repo, amount=10, category="Gift", type="income", goal_id=their_goal.id)
    with pytest.raises(NotFoundError):
        Contribute(repo).execute("u1", their_goal.id, 10)
    assert repo.get_wallet("u2", theirs.id).balance == Decimal("0.00")
    assert repo.list_transactions("u1") == []


def test_inactive_goal_rejects_new_contributions(repo):
    goal = _goal(repo)
    DeactivateGoal(repo).execute("u1", goal.id)
    with pytest.raises(ValidationError, match="not active"):
        Contribute(repo).execute("u1", goal.id, 10)
    with pytest.raises(ValidationError, match="not active"):
        _apply(repo, amount=10, category="Gift", type="income", goal_id=goal.id)


def test_request_id_makes_apply_idempotent(repo):
    wallet = _wallet(repo)
    first = _apply(
        repo, amount=500, category="Salary", type="income", wallet_id=wallet.id, request_id="r-1"
    )
    again = _apply(
        repo, amount=500, category="Salary", type="income", wallet_id=wallet.id, request_id="r-1"
    )
    assert again.id == first.id
    assert repo.get_wallet("u1", wallet.id).balance == Decimal("500.00")
    assert len(repo.list_transactions("u1")) == 1


def test_failed_balance_update_rolls_back_transaction_row(repo):
    wallet = _wallet(repo)
    with patch.object(
        repo.store, "update_wallet_balance", side_effect=sqlite3.OperationalError("locked")
    ):
        with pytest.raises(StoreUnavailableError):
            _apply(repo, amount=500, category="Salary", type="income", wallet_id=wallet.id)
    assert repo.list_transactions("u1") == []
    assert repo.get_wallet("u1", wallet.id).balance == Decimal("0.00")


def test_failed_goal_update_rolls_back_wallet_change(repo):
    wallet = _wallet(repo)
    goal = _goal(repo)
    with patch.object(
        repo.store, "update_goal_progress", side_effect=sqlite3.OperationalError("locked")
    ):
        with pytest.raises(StoreUnavailableError):
            _apply(
                repo,
                amount=100,
                category="Bonus",
                type="income",
                wallet_id=wallet.id,
                goal_id=goal.id,
            )
    assert repo.get_wallet("u1", wallet.id).balance == Decimal("0.00")
    assert repo.get_goal("u1", goal.id).current_amount == Decimal("0.00")
    assert repo.list_transactions("u1") == []


def test_delete_that_would_make_goal_negative_is_rejected(repo):
    wallet = _wallet(repo)
    goal = _goal(repo)
    tx = _apply(
        repo, amount=100, category="Bonus", type="income", wallet_id=wallet.id, goal_id=goal.id
    )
    Contribute(repo).execute("u1", goal.id, -80)

    with pytest.raises(ValidationError, match="below zero"):
        DeleteTransaction(repo).execute("u1", tx.id)
    assert repo.get_transaction("u1", tx.id).id == tx.id
    assert repo.get_wallet("u1", wallet.id).balance == Decimal("100.00")
    assert repo.get_goal("u1", goal.id).current_amount == Decimal("20.00")


def test_contribution_validation(repo):
    goal = _goal(repo)
    with pytest.raises(ValidationError, match="zero"):
        Contribute(repo).execute("u1", goal.id, 0)
    with pytest.raises(ValidationError, match="below zero"):
        Contribute(repo).execute("u1", goal.id, -1)
    Contribute(repo).execute("u1", goal.id, 50)
    assert Contribute(repo).execute("u1", goal.id, "-50").current_amount == Decimal("0.00")


def test_contribute_uses_atomic_increment_not_read_modify_write():
    repository = Mock(spec=LedgerRepository)
    repository.atomic.return_value.__enter__ = Mock(return_value=None)
    repository.atomic.return_value.__exit__ = Mock(return_value=False)
    goal = Goal(id=7, owner_id="u1", title="Trip", target_amount=Decimal("1000"))
    repository.get_goal.return_value = goal

    Contribute(repository).execute("u1", 7, "12.50")

    repository.adjust_goal_progress.assert_called_once_with(7, Decimal("12.50"))
    repository.update_goal.assert_not_called()


def test_wallet_management(repo):
    wallets = BootstrapAccount(repo).execute("u1")
    assert sorted((w.name, w.type) for w in wallets) == [
        ("Card", "card"),
        ("Cash", "cash"),
        ("Investments", "investment"),
        ("Reserve", "reserve"),
    ]
    assert len(BootstrapAccount(repo).execute("u1")) == 4

    cash = next(w for w in wallets if w.name == "Cash")
    assert RenameWallet(repo).execute("u1", cash.id, "Pocket").name == "Pocket"
    with pytest.raises(ValidationError):
        CreateWallet(repo).execute("u1", name="Crypto", type="crypto")

    _apply(repo, amount=20, category="Food", type="expense", wallet_id=cash.id)
    overridden = OverrideWalletBalance(repo).execute("u1", cash.id, "300")
    assert overridden.balance == Decimal("300.00")
    _assert_reconciled(repo, cash.id)

    DeleteWallet(repo).execute("u1", cash.id)
    orphan = repo.list_transactions("u1")[0]
    assert orphan.wallet_id is None
    assert len(repo.list_wallets("u1")) == 3


def test_bootstrap_after_questionnaire_adds_default_wallets(repo):
    SubmitBudgetSnapshot(repo, today=lambda: TODAY).execute(
        "u1", income=3000, rent=900, shopping=400
    )
    wallets = BootstrapAccount(repo).execute("u1")
    assert sorted(w.name for w in wallets) == [
        "Card",
        "Cash",
        "Investments",
        "Main wallet",
        "Reserve",
    ]
    primary = next(w for w in wallets if w.is_primary)
    assert primary.balance == Decimal("1700.00")
    assert len(BootstrapAccount(repo).execute("u1")) == 5


def test_deleting_orphaned_transaction_only_reverses_remaining_links(repo):
    cash = _wallet(repo, name="Cash", opening_balance=100)
    card = _wallet(repo, name="Card")
    tx = _apply(
        repo,
        amount=40,
        category="Move",
        type="transfer",
        wallet_id=cash.id,
        counterpart_wallet_id=card.id,
    )
    DeleteWallet(repo).execute("u1", card.id)
    DeleteTransaction(repo).execute("u1", tx.id)
    assert repo.get_wallet("u1", cash.id).balance == Decimal("100.00")


def test_goal_management(repo):
    goal = CreateGoal(repo).execute(
        "u1",
        title="Car",
        target_amount="5000",
        target_date="2027-01-01",
        frequency="Monthly",
        auto_contribution="250",
    )
    assert goal.frequency == "monthly"
    assert goal.target_date == date(2027, 1, 1)

    updated = UpdateGoal(repo).execute("u1", goal.id, title="New car", current_amount="4000")
    assert updated.title == "New car"
    assert updated.current_amount == Decimal("4000.00")
    with pytest.raises(ValidationError):
        UpdateGoal(repo).execute("u1", goal.id, current_amount="-1")
    with pytest.raises(ValidationError):
        CreateGoal(repo).execute("u1", title="Bad", target_amount=0)

    outlook = GetGoalOutlook(repo).execute("u1", goal.id)
    assert outlook.months_to_target == 4
    assert outlook.progress_percent == 80.0
    assert GetGoalOutlook(repo).execute("u1", goal.id, 0).months_to_target is None

    done = _goal(repo, target=10)
    Contribute(repo).execute("u1", done.id, 10)
    DeactivateGoal(repo).execute("u1", done.id)
    assert [g.id for g in GetActiveGoals(repo).execute("u1")] == [goal.id]
    assert [g.id for g in GetCompletedGoals(repo).execute("u1")] == [done.id]

    stats = CalculateGoalsStats(repo).execute("u1")
    assert (stats.total, stats.active, stats.completed) == (2, 1, 1)
    assert stats.total_saved == Decimal("4010.00")
    assert stats.total_target == Decimal("5010.00")


def test_reports(repo):
    wallet = _wallet(repo, opening_balance=1000)
    other = _wallet(repo, name="Card")
    for amount, kind, category, day in (
        (3000, "income", "Salary", "2026-03-01"),
        (900, "expense", "Housing", "2026-03-02"),
        (150, "expense", "Food", "2026-03-10"),
        (50, "expense", "Food", "2026-04-01"),
        (100, "transfer", "Move", "2026-03-05"),
    ):
        extra = {"counterpart_wallet_id": other.id} if kind == "transfer" else {}
        _apply(
            repo,
            amount=amount,
            category=category,
            type=kind,
            wallet_id=wallet.id,
            date=day,
            **extra,
        )

    summary = CalculateMonthlySummary(repo).execute("u1", "2026-03-01", "2026-03-31")
    assert summary.income == Decimal("3000.00")
    assert summary.expenses == Decimal("1050.00")
    assert summary.balance == Decimal("1950.00")
    with pytest.raises(ValidationError):
        CalculateMonthlySummary(repo).execute("u1", "2026-03-31", "2026-03-01")

    march = GetTransactionsByPeriod(repo).execute("u1", "2026-03-01", "2026-03-31")
    assert len(march) == 4
    assert len(GetTransactionsByCategory(repo).execute("u1", "Food")) == 2
    recent = GetRecentTransactions(repo).execute("u1", limit=2)
    assert [t.date.isoformat() for t in recent] == ["2026-04-01", "2026-03-10"]
    assert len(GetRecentTransactions(repo).execute("u1")) == 5
    with pytest.raises(ValidationError):
        GetRecentTransactions(repo).execute("u1", limit=0)

    by_category = CalculateExpensesByCategory(repo).execute("u1")
    assert by_category == {"Housing": Decimal("900.00"), "Food": Decimal("200.00")}
    assert CalculateExpensesByCategory(repo).execute("u1", "2026-04-01", "2026-04-30") == {
        "Food": Decimal("50.00")
    }
    assert CalculateTotalBalance(repo).execute("u1") == Decimal("2900.00")
