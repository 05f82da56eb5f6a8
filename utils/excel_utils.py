import logging
import os
from collections.abc import Iterable

from openpyxl import Workbook

from domain.reports import (
    MonthlySummary,
    aggregate_expenses_by_category,
    monthly_income_expense_rows,
)
from domain.transactions import Transaction

logger = logging.getLogger(__name__)

TRANSACTION_HEADERS = ["Date", "Type", "Category", "Description", "Amount"]


def _signed(transaction: Transaction) -> float:
    if transaction.type == "expense":
        return -float(transaction.amount)
    return float(transaction.amount)


def ledger_to_xlsx(
    transactions: Iterable[Transaction], summary: MonthlySummary, filepath: str
) -> None:
    """Export transactions, expenses by category and the period summary to XLSX."""
    ordered = sorted(transactions, key=lambda t: (t.date, t.id or 0))

    wb = Workbook()
    ws = wb.active
    ws.title = "Transactions"
    ws.append(TRANSACTION_HEADERS)
    for transaction in ordered:
        ws.append(
            [
                transaction.date,
                transaction.type.capitalize(),
                transaction.category,
                transaction.description,
                _signed(transaction),
            ]
        )

    bycat_ws = wb.create_sheet("By Category")
    bycat_ws.append(["Category", "Expenses"])
    by_category = aggregate_expenses_by_category(ordered)
    for category, total in sorted(by_category.items(), key=lambda item: item[1], reverse=True):
        bycat_ws.append([category, float(total)])
    bycat_ws.append(["TOTAL", float(sum(by_category.values()))])

    summary_ws = wb.create_sheet("Summary")
    summary_ws.append(["Income", float(summary.income)])
    summary_ws.append(["Expenses", float(summary.expenses)])
    summary_ws.append(["Balance", float(summary.balance)])
    if ordered:
        year = ordered[-1].date.year
        summary_ws.append([])
        summary_ws.append([f"Month ({year})", "Income", "Expenses"])
        for month_label, income, expense in monthly_income_expense_rows(ordered, year):
            summary_ws.append([month_label, float(income), float(expense)])

    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    wb.save(filepath)
    wb.close()
    logger.info("XLSX export written path=%s rows=%s", filepath, len(ordered))
