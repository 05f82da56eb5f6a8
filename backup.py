from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

import config
from infrastructure.repositories import LedgerRepository

logger = logging.getLogger(__name__)


def create_backup(db_path: str, backup_dir: str | None = None) -> str | None:
    """Copy the SQLite database through the online backup API; None if it does not exist."""
    source = Path(db_path)
    if not source.exists():
        return None
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    target_dir = Path(backup_dir or config.BACKUP_DIR)
    target_dir.mkdir(parents=True, exist_ok=True)
    backup_path = target_dir / f"{source.stem}_backup_{stamp}{source.suffix}"
    src = sqlite3.connect(str(source))
    dst = sqlite3.connect(str(backup_path))
    try:
        src.backup(dst)
    finally:
        dst.close()
        src.close()
    logger.info("Database backup created path=%s", backup_path)
    return str(backup_path)


def _jsonable(value):
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def export_to_json(repository: LedgerRepository, owner_id: str, json_path: str) -> None:
    """Dump one owner's ledger (wallets, goals, transactions, snapshots) to JSON."""
    payload = {
        "owner_id": owner_id,
        "exported_at": datetime.now().isoformat(timespec="seconds"),
        "wallets": [asdict(wallet) for wallet in repository.list_wallets(owner_id)],
        "goals": [asdict(goal) for goal in repository.list_goals(owner_id)],
        "transactions": [
            asdict(transaction)
            for transaction in repository.list_transactions(owner_id, newest_first=False)
        ],
        "questionnaires": [asdict(snapshot) for snapshot in repository.list_snapshots(owner_id)],
    }
    target = Path(json_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as fp:
        json.dump(payload, fp, ensure_ascii=False, indent=2, default=_jsonable)
    logger.info(
        "Ledger exported to JSON owner_id=%s path=%s transactions=%s",
        owner_id,
        json_path,
        len(payload["transactions"]),
    )
