from __future__ import annotations

import logging
from pathlib import Path

from app.services import LedgerService
from backup import create_backup
from config import SQLITE_PATH
from infrastructure.sqlite_repository import SQLiteLedgerRepository

logger = logging.getLogger(__name__)


def bootstrap_repository(
    db_path: str | None = None, *, backup: bool = False
) -> SQLiteLedgerRepository:
    """Open the ledger database, creating the schema when needed."""
    path = db_path or SQLITE_PATH
    if backup and Path(path).exists():
        create_backup(path)
    repository = SQLiteLedgerRepository.open(path)
    logger.info("Ledger store opened path=%s", path)
    return repository


def bootstrap_service(db_path: str | None = None, *, backup: bool = False) -> LedgerService:
    return LedgerService(bootstrap_repository(db_path, backup=backup))
