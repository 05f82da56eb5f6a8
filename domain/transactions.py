from dataclasses import dataclass, field, replace
from datetime import date as dt_date
from datetime import datetime
from decimal import Decimal

from .errors import ValidationError
from .validation import ensure_choice, ensure_positive, ensure_text, parse_ymd

TRANSACTION_TYPES = frozenset({"income", "expense", "transfer"})
EDITABLE_FIELDS = ("amount", "category", "description", "date")


@dataclass(frozen=True)
class Transaction:
    owner_id: str
    amount: Decimal
    category: str
    type: str
    date: dt_date | str
    id: int | None = None
    wallet_id: int | None = None
    counterpart_wallet_id: int | None = None
    goal_id: int | None = None
    description: str = ""
    request_id: str | None = None
    created_at: datetime | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", parse_ymd(self.date))
        object.__setattr__(self, "amount", ensure_positive(self.amount))
        object.__setattr__(self, "category", ensure_text(self.category, "category"))
        object.__setattr__(self, "type", ensure_choice(self.type, TRANSACTION_TYPES, "type"))
        object.__setattr__(self, "description", str(self.description or ""))

        if self.type == "expense" and self.goal_id is not None:
            raise ValidationError("Expense transactions cannot be linked to a goal")
        if self.type != "transfer" and self.counterpart_wallet_id is not None:
            raise ValidationError("Only transfers can have a destination wallet")

    def validate_links(self) -> None:
        """Shape checks for a new transfer; stored rows may be orphaned later."""
        if self.type == "transfer":
            if self.wallet_id is None:
                raise ValidationError("Transfer requires a source wallet")
            if self.counterpart_wallet_id is None and self.goal_id is None:
                raise ValidationError("Transfer requires a destination wallet or goal")
            if self.counterpart_wallet_id == self.wallet_id:
                raise ValidationError("Transfer source and destination wallets must be different")

    def postings(self) -> "Postings":
        """Balance and goal changes this transaction causes while it exists."""
        wallets: dict[int, Decimal] = {}
        goal_delta = Decimal("0.00")
        if self.type == "income":
            if self.wallet_id is not None:
                wallets[self.wallet_id] = self.amount
            if self.goal_id is not None:
                goal_delta = self.amount
        elif self.type == "expense":
            if self.wallet_id is not None:
                wallets[self.wallet_id] = -self.amount
        else:
            if self.wallet_id is not None:
                wallets[self.wallet_id] = -self.amount
            if self.counterpart_wallet_id is not None:
                wallets[self.counterpart_wallet_id] = self.amount
            if self.goal_id is not None:
                goal_delta = self.amount
        return Postings(wallets=wallets, goal_id=self.goal_id, goal_delta=goal_delta)

    def with_edits(self, **changes) -> "Transaction":
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {sorted(unknown)}")
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


@dataclass(frozen=True)
class Postings:
    wallets: dict[int, Decimal]
    goal_id: int | None = None
    goal_delta: Decimal = Decimal("0.00")

    def reversed(self) -> "Postings":
        return Postings(
            wallets={wallet_id: -delta for wallet_id, delta in self.wallets.items()},
            goal_id=self.goal_id,
            goal_delta=-self.goal_delta,
        )

    def minus(self, other: "Postings") -> "Postings":
        """Delta that turns `other` into this posting set."""
        wallets = dict(self.wallets)
        for wallet_id, delta in other.wallets.items():
            wallets[wallet_id] = wallets.get(wallet_id, Decimal("0.00")) - delta
        goal_id = self.goal_id if self.goal_id is not None else other.goal_id
        return Postings(
            wallets={wallet_id: delta for wallet_id, delta in wallets.items() if delta != 0},
            goal_id=goal_id,
            goal_delta=self.goal_delta - other.goal_delta,
        )
