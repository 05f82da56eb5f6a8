from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest

from app.services import LedgerService, Result
from infrastructure.repositories import LedgerRepository
from infrastructure.sqlite_repository import SQLiteLedgerRepository


@pytest.fixture
def service(tmp_path):
    repository = SQLiteLedgerRepository.open(str(tmp_path / "ledger.db"))
    yield LedgerService(repository, today=lambda: date(2026, 3, 15))
    repository.close()


def test_result_constructors():
    assert Result.success(5) == Result(ok=True, data=5)
    failure = Result.failure("boom", "validation_error")
    assert not failure.ok
    assert failure.data is None


def test_successful_call_wraps_data(service):
    result = service.create_wallet("u1", name="Cash", opening_balance="10")
    assert result.ok
    assert result.data.balance == Decimal("10.00")


@pytest.mark.parametrize(
    "call, kind",
    [
        (
            lambda s: s.apply_transaction("u1", amount=-5, category="Food", type="expense"),
            "validation_error",
        ),
        (lambda s: s.contribute("u1", 404, 10), "not_found"),
        (lambda s: s.delete_transaction("u1", 404), "not_found"),
        (
            lambda s: s.submit_budget_snapshot("u1", income="x", rent=0, shopping=0),
            "validation_error",
        ),
        (lambda s: s.monthly_summary("u1", "2026-13-01", "2026-12-31"), "validation_error"),
        (lambda s: s.recent_transactions("", 10), "validation_error"),
        (
            lambda s: s.apply_transaction("u1", amount="1e30", category="X", type="income"),
            "validation_error",
        ),
    ],
)
def test_domain_errors_become_failed_results(service, call, kind):
    result = call(service)
    assert not result.ok
    assert result.kind == kind
    assert result.error


def test_unexpected_errors_are_reported_as_internal(caplog):
    repository = Mock(spec=LedgerRepository)
    repository.list_wallets.side_effect = RuntimeError("connection reset")
    result = LedgerService(repository).list_wallets("u1")
    assert result == Result(ok=False, error="connection reset", kind="internal_error")
    assert "Operation failed operation=list_wallets" in caplog.text


def test_end_to_end_flow(service):
    wallets = service.bootstrap_account("u1").data
    cash = next(w for w in wallets if w.name == "Cash")

    assert service.apply_transaction(
        "u1", amount=500, category="Salary", type="income", wallet_id=cash.id, date="2026-03-01"
    ).ok
    expense = service.apply_transaction(
        "u1", amount=120, category="Food", type="expense", wallet_id=cash.id, date="2026-03-02"
    ).data
    assert service.edit_transaction("u1", expense.id, amount=100).ok

    summary = service.monthly_summary("u1", "2026-03-01", "2026-03-31").data
    assert (summary.income, summary.expenses, summary.balance) == (
        Decimal("500.00"),
        Decimal("100.00"),
        Decimal("400.00"),
    )
    assert service.total_balance("u1").data == Decimal("400.00")
    assert service.reconcile_wallet("u1", cash.id).data.is_consistent

    goal = service.create_goal("u1", title="Trip", target_amount=1000).data
    assert service.contribute("u1", goal.id, 250).data.progress == 25.0
    assert service.goals_stats("u1").data.total_saved == Decimal("250.00")

    snapshot = service.submit_budget_snapshot("u1", income=3000, rent=900, shopping=400).data
    assert snapshot.savings == Decimal("1700.00")
    assert service.latest_budget_snapshot("u1").data == snapshot
    march_15 = service.transactions_by_period("u1", "2026-03-15", "2026-03-15").data
    assert len(march_15) == 3


def test_subscribe_receives_committed_changes(service):
    events = []
    unsubscribe = service.subscribe("goals", "u1", events.append)
    goal = service.create_goal("u1", title="Trip", target_amount=100).data
    service.contribute("u1", goal.id, 10)
    assert [(e.action, e.row_id) for e in events] == [("insert", goal.id), ("update", goal.id)]

    unsubscribe()
    service.contribute("u1", goal.id, 10)
    assert len(events) == 2


def test_rejected_write_publishes_nothing(service):
    events = []
    goal = service.create_goal("u1", title="Trip", target_amount=100).data
    service.subscribe("goals", "u1", events.append)
    service.subscribe("transactions", "u1", events.append)

    result = service.apply_transaction(
        "u1", amount=10, category="Gift", type="income", goal_id=goal.id, wallet_id=999
    )
    assert result.kind == "not_found"
    assert events == []


def test_handler_can_refresh_through_another_thread(service):
    seen = []

    def refresh(event):
        with ThreadPoolExecutor(max_workers=1) as pool:
            result = pool.submit(service.list_wallets, event.owner_id).result(timeout=5)
        seen.append([wallet.name for wallet in result.data])

    service.subscribe("wallets", "u1", refresh)
    assert service.create_wallet("u1", name="Cash").ok
    assert seen == [["Cash"]]
