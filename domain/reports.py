from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date as dt_date
from decimal import Decimal

from prettytable import PrettyTable

from .goals import Goal
from .transactions import Transaction
from .wallets import Wallet

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class MonthlySummary:
    income: Decimal
    expenses: Decimal
    balance: Decimal


@dataclass(frozen=True)
class GoalsStats:
    total: int
    active: int
    completed: int
    total_saved: Decimal
    total_target: Decimal


@dataclass(frozen=True)
class WalletReconciliation:
    wallet_id: int
    stored_balance: Decimal
    derived_balance: Decimal

    @property
    def is_consistent(self) -> bool:
        return self.stored_balance == self.derived_balance


def summarize_period(
    transactions: Iterable[Transaction], start: dt_date, end: dt_date
) -> MonthlySummary:
    """Income and expense totals for start <= date <= end. Transfers are ignored."""
    income = ZERO
    expenses = ZERO
    for transaction in transactions:
        if not (start <= transaction.date <= end):
            continue
        if transaction.type == "income":
            income += transaction.amount
        elif transaction.type == "expense":
            expenses += transaction.amount
    return MonthlySummary(income=income, expenses=expenses, balance=income - expenses)


def summarize_goals(goals: Iterable[Goal]) -> GoalsStats:
    goals = list(goals)
    return GoalsStats(
        total=len(goals),
        active=sum(1 for goal in goals if goal.is_active),
        completed=sum(1 for goal in goals if goal.is_completed),
        total_saved=sum((goal.current_amount for goal in goals), ZERO),
        total_target=sum((goal.target_amount for goal in goals), ZERO),
    )


def aggregate_expenses_by_category(transactions: Iterable[Transaction]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for transaction in transactions:
        if transaction.type != "expense":
            continue
        totals[transaction.category] = totals.get(transaction.category, ZERO) + transaction.amount
    return totals


def derived_wallet_balance(wallet: Wallet, transactions: Iterable[Transaction]) -> Decimal:
    total = wallet.opening_balance
    for transaction in transactions:
        total += transaction.postings().wallets.get(wallet.id, ZERO)
    return total


def monthly_income_expense_rows(
    transactions: Iterable[Transaction], year: int
) -> list[tuple[str, Decimal, Decimal]]:
    aggregates: dict[int, tuple[Decimal, Decimal]] = {}
    for transaction in transactions:
        if transaction.date.year != year:
            continue
        income_total, expense_total = aggregates.get(transaction.date.month, (ZERO, ZERO))
        if transaction.type == "income":
            income_total += transaction.amount
        elif transaction.type == "expense":
            expense_total += transaction.amount
        aggregates[transaction.date.month] = (income_total, expense_total)
    return [
        (f"{year}-{month:02d}", *aggregates.get(month, (ZERO, ZERO))) for month in range(1, 13)
    ]


def _money(value: Decimal) -> str:
    return f"{value:.2f}" if value >= 0 else f"({abs(value):.2f})"


def transactions_table(transactions: Iterable[Transaction]) -> str:
    table = PrettyTable()
    table.field_names = ["ID", "Date", "Type", "Category", "Amount", "Wallet", "Goal"]
    for transaction in transactions:
        table.add_row(
            [
                transaction.id,
                transaction.date.isoformat(),
                transaction.type.capitalize(),
                transaction.category,
                _money(transaction.amount),
                transaction.wallet_id or "",
                transaction.goal_id or "",
            ]
        )
    return str(table)


def wallets_table(wallets: Iterable[Wallet]) -> str:
    table = PrettyTable()
    table.field_names = ["ID", "Name", "Type", "Balance", "Currency"]
    total = ZERO
    for wallet in wallets:
        name = f"{wallet.name} *" if wallet.is_primary else wallet.name
        table.add_row([wallet.id, name, wallet.type, _money(wallet.balance), wallet.currency])
        total += wallet.balance
    table.add_row(["", "TOTAL", "", _money(total), ""])
    return str(table)


def goals_table(goals: Iterable[Goal]) -> str:
    table = PrettyTable()
    table.field_names = ["ID", "Title", "Saved", "Target", "Progress", "Active"]
    for goal in goals:
        table.add_row(
            [
                goal.id,
                goal.title,
                _money(goal.current_amount),
                _money(goal.target_amount),
                f"{goal.progress:.0f}%",
                "yes" if goal.is_active else "no",
            ]
        )
    return str(table)


def summary_table(summary: MonthlySummary, label: str) -> str:
    table = PrettyTable()
    table.field_names = ["Period", "Income", "Expenses", "Balance"]
    table.add_row(
        [label, _money(summary.income), _money(summary.expenses), _money(summary.balance)]
    )
    return str(table)
