import math
from dataclasses import dataclass
from datetime import date as dt_date
from datetime import datetime
from decimal import Decimal

GOAL_FREQUENCIES = frozenset({"weekly", "monthly", "one-time"})


@dataclass(frozen=True)
class Goal:
    id: int
    owner_id: str
    title: str
    target_amount: Decimal
    current_amount: Decimal = Decimal("0.00")
    target_date: dt_date | None = None
    frequency: str | None = None
    auto_contribution: Decimal = Decimal("0.00")
    is_active: bool = True
    created_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return is_goal_completed(self.current_amount, self.target_amount)

    @property
    def progress(self) -> float:
        return progress_percent(self.current_amount, self.target_amount)


def is_goal_completed(current_amount: Decimal, target_amount: Decimal) -> bool:
    return current_amount >= target_amount


def progress_percent(current_amount: Decimal, target_amount: Decimal) -> float:
    """Share of the target reached, capped at 100 for display."""
    if target_amount <= 0:
        return 0.0
    return min(float(current_amount) / float(target_amount) * 100.0, 100.0)


def months_to_target(
    current_amount: Decimal, target_amount: Decimal, monthly_contribution: Decimal
) -> int | None:
    """Months of contributions still needed; None when the goal is never reached."""
    if current_amount >= target_amount:
        return 0
    if monthly_contribution <= 0:
        return None
    return math.ceil((target_amount - current_amount) / monthly_contribution)
