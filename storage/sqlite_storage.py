from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .base import LedgerStore, Row
from .events import ChangeEvent, ChangeNotifier

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"


class SQLiteLedgerStore(LedgerStore):
    """SQLite-backed ledger store without domain/business logic.

    Write transactions use ``BEGIN IMMEDIATE`` so concurrent writers, whether
    threads on this connection or other connections to the same file, are
    serialized by SQLite. Change events are published only after commit.
    """

    def __init__(self, db_path: str = "ledger.db", timeout: float = 5.0) -> None:
        self._db_path = db_path
        self._conn = sqlite3.connect(
            db_path, timeout=timeout, isolation_level=None, check_same_thread=False
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON;")
        self._conn.execute("PRAGMA journal_mode = WAL;")
        self._lock = threading.RLock()
        self._depth = 0
        self._pending: list[ChangeEvent] = []
        self._notifier = ChangeNotifier()
        self._columns: dict[str, frozenset[str]] = {}

    @property
    def db_path(self) -> str:
        return self._db_path

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def initialize_schema(self, schema_path: str | None = None) -> None:
        schema = Path(schema_path or SCHEMA_PATH).read_text(encoding="utf-8")
        with self._lock:
            self._conn.executescript(schema)
            self._load_columns()

    def _load_columns(self) -> None:
        tables = self._conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
        ).fetchall()
        for (table,) in tables:
            info = self._conn.execute(f'PRAGMA table_info("{table}")').fetchall()
            self._columns[table] = frozenset(str(row["name"]) for row in info)

    def _check(self, table: str, columns) -> None:
        known = self._columns.get(table)
        if known is None:
            raise ValueError(f"Unknown table: {table}")
        unknown = set(columns) - known
        if unknown:
            raise ValueError(f"Unknown columns for {table}: {sorted(unknown)}")

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Run the block in one transaction; nested blocks join the outer one."""
        events: list = []
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._conn.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if outermost:
                    if self._conn.in_transaction:
                        self._conn.execute("ROLLBACK")
                    discarded = len(self._pending)
                    self._pending.clear()
                    logger.debug("Transaction rolled back, %s events discarded", discarded)
                raise
            else:
                self._depth -= 1
                if outermost:
                    try:
                        self._conn.execute("COMMIT")
                    except sqlite3.Error:
                        if self._conn.in_transaction:
                            self._conn.execute("ROLLBACK")
                        self._pending.clear()
                        raise
                    events, self._pending = self._pending, []
        if events:
            self._notifier.publish(events)

    def _emit(self, table: str, rows: list[sqlite3.Row], action: str) -> None:
        for row in rows:
            self._pending.append(
                self._notifier.event(table, row["owner_id"], action, row["id"])
            )

    @staticmethod
    def _where(
        filters: Mapping[str, Any] | None, ranges: Mapping[str, tuple[Any, Any]] | None = None
    ) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        for column, value in (filters or {}).items():
            if value is None:
                clauses.append(f'"{column}" IS NULL')
            else:
                clauses.append(f'"{column}" = ?')
                params.append(value)
        for column, (low, high) in (ranges or {}).items():
            if low is not None:
                clauses.append(f'"{column}" >= ?')
                params.append(low)
            if high is not None:
                clauses.append(f'"{column}" <= ?')
                params.append(high)
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    def insert(self, table: str, values: Mapping[str, Any]) -> int:
        self._check(table, values)
        columns = ", ".join(f'"{column}"' for column in values)
        placeholders = ", ".join("?" for _ in values)
        with self.atomic():
            cursor = self._conn.execute(
                f'INSERT INTO "{table}" ({columns}) VALUES ({placeholders})',
                tuple(values.values()),
            )
            row_id = int(cursor.lastrowid)
            self._emit(table, self._rows_by_id(table, [row_id]), "insert")
        return row_id

    def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        ranges: Mapping[str, tuple[Any, Any]] | None = None,
        order_by: tuple[str, ...] = (),
        limit: int | None = None,
    ) -> list[Row]:
        self._check(table, list(filters or {}) + list(ranges or {}))
        self._check(table, [column.lstrip("-") for column in order_by])
        where, params = self._where(filters, ranges)
        sql = f'SELECT * FROM "{table}"{where}'
        if order_by:
            sql += " ORDER BY " + ", ".join(
                f'"{column.lstrip("-")}" {"DESC" if column.startswith("-") else "ASC"}'
                for column in order_by
            )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [dict(row) for row in rows]

    def update(self, table: str, values: Mapping[str, Any], filters: Mapping[str, Any]) -> int:
        self._check(table, list(values) + list(filters))
        if not values:
            return 0
        assignments = ", ".join(f'"{column}" = ?' for column in values)
        if not filters:
            raise ValueError("Refusing to touch every row without filters")
        where, params = self._where(filters)
        with self.atomic():
            affected = self._conn.execute(
                f'SELECT id, owner_id FROM "{table}"{where}', params
            ).fetchall()
            if not affected:
                return 0
            self._conn.execute(
                f'UPDATE "{table}" SET {assignments}{where}',
                tuple(values.values()) + tuple(params),
            )
            self._emit(table, affected, "update")
        return len(affected)

    def delete(self, table: str, filters: Mapping[str, Any]) -> int:
        self._check(table, filters)
        if not filters:
            raise ValueError("Refusing to touch every row without filters")
        where, params = self._where(filters)
        with self.atomic():
            affected = self._conn.execute(
                f'SELECT id, owner_id FROM "{table}"{where}', params
            ).fetchall()
            if not affected:
                return 0
            self._conn.execute(f'DELETE FROM "{table}"{where}', params)
            self._emit(table, affected, "delete")
        return len(affected)

    def update_wallet_balance(self, wallet_id: int, delta_cents: int) -> int | None:
        with self.atomic():
            cursor = self._conn.execute(
                "UPDATE wallets SET balance_cents = balance_cents + ? WHERE id = ?",
                (int(delta_cents), int(wallet_id)),
            )
            if cursor.rowcount == 0:
                return None
            rows = self._rows_by_id("wallets", [int(wallet_id)])
            self._emit("wallets", rows, "update")
            return int(
                self._conn.execute(
                    "SELECT balance_cents FROM wallets WHERE id = ?", (int(wallet_id),)
                ).fetchone()[0]
            )

    def update_goal_progress(self, goal_id: int, delta_cents: int) -> int | None:
        with self.atomic():
            cursor = self._conn.execute(
                """
                UPDATE goals
                SET current_amount_cents = current_amount_cents + ?
                WHERE id = ? AND current_amount_cents + ? >= 0
                """,
                (int(delta_cents), int(goal_id), int(delta_cents)),
            )
            if cursor.rowcount == 0:
                return None
            rows = self._rows_by_id("goals", [int(goal_id)])
            self._emit("goals", rows, "update")
            return int(
                self._conn.execute(
                    "SELECT current_amount_cents FROM goals WHERE id = ?", (int(goal_id),)
                ).fetchone()[0]
            )

    def subscribe(
        self, table: str, owner_id: str, handler: Callable[[ChangeEvent], None]
    ) -> Callable[[], None]:
        return self._notifier.subscribe(table, owner_id, handler)

    def _rows_by_id(self, table: str, ids: list[int]) -> list[sqlite3.Row]:
        placeholders = ", ".join("?" for _ in ids)
        return self._conn.execute(
            f'SELECT id, owner_id FROM "{table}" WHERE id IN ({placeholders})', ids
        ).fetchall()
