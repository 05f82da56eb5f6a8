from __future__ import annotations

from collections.abc import Callable, Mapping
from contextlib import AbstractContextManager
from typing import Any, Protocol

from .events import ChangeEvent

Row = dict[str, Any]


class LedgerStore(Protocol):
    """Row-level storage contract consumed by the ledger repository.

    Filters are equality matches; ``ranges`` maps a column to an inclusive
    ``(low, high)`` pair where either bound may be ``None``. ``order_by``
    names columns, a leading ``-`` sorts descending.
    """

    def atomic(self) -> AbstractContextManager[None]:
        ...

    def insert(self, table: str, values: Mapping[str, Any]) -> int:
        ...

    def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        ranges: Mapping[str, tuple[Any, Any]] | None = None,
        order_by: tuple[str, ...] = (),
        limit: int | None = None,
    ) -> list[Row]:
        ...

    def update(self, table: str, values: Mapping[str, Any], filters: Mapping[str, Any]) -> int:
        ...

    def delete(self, table: str, filters: Mapping[str, Any]) -> int:
        ...

    def update_wallet_balance(self, wallet_id: int, delta_cents: int) -> int | None:
        """Add a signed delta to a wallet balance; None if the wallet is missing."""
        ...

    def update_goal_progress(self, goal_id: int, delta_cents: int) -> int | None:
        """Add a signed delta to goal progress unless it would go below zero.

        Returns the new amount, or None when the goal is missing or the
        delta was refused.
        """
        ...

    def subscribe(
        self, table: str, owner_id: str, handler: Callable[[ChangeEvent], None]
    ) -> Callable[[], None]:
        ...
