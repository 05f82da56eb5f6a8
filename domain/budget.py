from dataclasses import dataclass
from datetime import date as dt_date
from datetime import datetime
from decimal import Decimal

import config

from .transactions import Transaction
from .validation import ensure_non_negative


@dataclass(frozen=True)
class BudgetSnapshot:
    owner_id: str
    monthly_income: Decimal
    rent_expense: Decimal
    shopping_expense: Decimal
    other_expenses: Decimal = Decimal("0.00")
    id: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_answers(cls, owner_id: str, *, income, rent, shopping, other=None) -> "BudgetSnapshot":
        return cls(
            owner_id=owner_id,
            monthly_income=ensure_non_negative(income, "income"),
            rent_expense=ensure_non_negative(rent, "rent"),
            shopping_expense=ensure_non_negative(shopping, "shopping"),
            other_expenses=ensure_non_negative(0 if other is None else other, "other"),
        )

    @property
    def total_expenses(self) -> Decimal:
        return self.rent_expense + self.shopping_expense + self.other_expenses

    @property
    def savings(self) -> Decimal:
        # negative savings signal overspending and are kept as is
        return self.monthly_income - self.total_expenses

    def derived_transactions(self, on: dt_date) -> list[Transaction]:
        """Ledger entries materialized from the questionnaire answers."""
        transactions: list[Transaction] = []
        if self.monthly_income > 0:
            transactions.append(
                Transaction(
                    owner_id=self.owner_id,
                    amount=self.monthly_income,
                    category=config.INCOME_CATEGORY,
                    type="income",
                    description=config.INCOME_DESCRIPTION,
                    date=on,
                )
            )
        amounts = {
            "rent": self.rent_expense,
            "shopping": self.shopping_expense,
            "other": self.other_expenses,
        }
        for key, category, description in config.QUESTIONNAIRE_EXPENSE_CATEGORIES:
            if amounts[key] > 0:
                transactions.append(
                    Transaction(
                        owner_id=self.owner_id,
                        amount=amounts[key],
                        category=category,
                        type="expense",
                        description=description,
                        date=on,
                    )
                )
        return transactions
