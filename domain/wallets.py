from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

WALLET_TYPES = frozenset({"cash", "card", "investment", "reserve"})


@dataclass(frozen=True)
class Wallet:
    id: int
    owner_id: str
    name: str
    type: str
    balance: Decimal
    currency: str
    opening_balance: Decimal = Decimal("0.00")
    is_primary: bool = False
    created_at: datetime | None = None
