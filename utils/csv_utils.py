import csv
import logging
import os
from collections.abc import Iterable

from domain.transactions import Transaction

logger = logging.getLogger(__name__)

DATA_HEADERS = [
    "id",
    "date",
    "type",
    "category",
    "amount",
    "wallet_id",
    "counterpart_wallet_id",
    "goal_id",
    "description",
]


def _cell(value) -> str:
    return "" if value is None else str(value)


def transactions_to_csv(transactions: Iterable[Transaction], filepath: str) -> int:
    """Write ledger transactions oldest first. Returns the number of rows written."""
    ordered = sorted(transactions, key=lambda t: (t.date, t.id or 0))
    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(filepath, "w", newline="", encoding="utf-8") as csvfile:
        writer = csv.writer(csvfile)
        writer.writerow(DATA_HEADERS)
        for transaction in ordered:
            writer.writerow(
                [
                    _cell(transaction.id),
                    transaction.date.isoformat(),
                    transaction.type,
                    transaction.category,
                    f"{transaction.amount:.2f}",
                    _cell(transaction.wallet_id),
                    _cell(transaction.counterpart_wallet_id),
                    _cell(transaction.goal_id),
                    transaction.description,
                ]
            )
    logger.info("CSV export written path=%s rows=%s", filepath, len(ordered))
    return len(ordered)
