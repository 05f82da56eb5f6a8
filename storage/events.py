from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import NamedTuple

logger = logging.getLogger(__name__)

Handler = Callable[["ChangeEvent"], None]


class ChangeEvent(NamedTuple):
    table: str
    owner_id: str
    action: str
    row_id: int
    ts: str


class ChangeNotifier:
    """Per-table, per-owner subscription registry."""

    def __init__(self) -> None:
        self._subscribers: dict[tuple[str, str], list[Handler]] = {}
        self._guard = threading.Lock()

    def subscribe(self, table: str, owner_id: str, handler: Handler) -> Callable[[], None]:
        key = (table, str(owner_id))
        with self._guard:
            self._subscribers.setdefault(key, []).append(handler)

        def unsubscribe() -> None:
            with self._guard:
                handlers = self._subscribers.get(key, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    @staticmethod
    def event(table: str, owner_id: str, action: str, row_id: int) -> ChangeEvent:
        return ChangeEvent(
            table=table,
            owner_id=str(owner_id),
            action=action,
            row_id=int(row_id),
            ts=datetime.now().isoformat(),
        )

    def publish(self, events: Iterable[ChangeEvent]) -> None:
        for event in events:
            with self._guard:
                handlers = list(self._subscribers.get((event.table, event.owner_id), []))
            for handler in handlers:
                try:
                    handler(event)
                except Exception:
                    # handler failures stay out of the committed write
                    logger.exception(
                        "Change handler failed table=%s owner_id=%s row_id=%s",
                        event.table,
                        event.owner_id,
                        event.row_id,
                    )
