import logging
import os
from collections.abc import Iterable

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.platypus import SimpleDocTemplate, Spacer, Table, TableStyle

from domain.reports import MonthlySummary, aggregate_expenses_by_category
from domain.transactions import Transaction

logger = logging.getLogger(__name__)

FONT_NAME = "Helvetica"


def _table_style(amount_column: int) -> TableStyle:
    return TableStyle(
        [
            ("FONT", (0, 0), (-1, -1), FONT_NAME),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
            ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
            ("ALIGN", (amount_column, 0), (amount_column, -1), "RIGHT"),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("LEFTPADDING", (0, 0), (-1, -1), 6),
            ("RIGHTPADDING", (0, 0), (-1, -1), 6),
        ]
    )


def ledger_to_pdf(
    transactions: Iterable[Transaction], summary: MonthlySummary, filepath: str
) -> None:
    """Export the ledger as PDF tables: transactions, expenses by category, totals."""
    ordered = sorted(transactions, key=lambda t: (t.date, t.id or 0))

    data = [["Date", "Type", "Category", "Amount"]]
    for transaction in ordered:
        sign = "-" if transaction.type == "expense" else ""
        data.append(
            [
                transaction.date.isoformat(),
                transaction.type.capitalize(),
                transaction.category,
                f"{sign}{transaction.amount:.2f}",
            ]
        )

    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)

    doc = SimpleDocTemplate(
        filepath,
        pagesize=A4,
        leftMargin=30,
        rightMargin=30,
        topMargin=30,
        bottomMargin=30,
    )
    available_width = A4[0] - 60

    table = Table(
        data,
        colWidths=[
            available_width * 0.18,
            available_width * 0.22,
            available_width * 0.40,
            available_width * 0.20,
        ],
        repeatRows=1,
    )
    table.setStyle(_table_style(3))

    category_data = [["Category", "Expenses"]]
    for category, total in sorted(
        aggregate_expenses_by_category(ordered).items(), key=lambda item: item[1], reverse=True
    ):
        category_data.append([category, f"{total:.2f}"])
    category_table = Table(
        category_data, colWidths=[available_width * 0.6, available_width * 0.4]
    )
    category_table.setStyle(_table_style(1))

    summary_table = Table(
        [
            ["Income", "Expenses", "Balance"],
            [f"{summary.income:.2f}", f"{summary.expenses:.2f}", f"{summary.balance:.2f}"],
        ],
        colWidths=[available_width / 3] * 3,
    )
    summary_table.setStyle(_table_style(2))

    doc.build([table, Spacer(1, 12), category_table, Spacer(1, 12), summary_table])
    logger.info("PDF export written path=%s rows=%s", filepath, len(ordered))
