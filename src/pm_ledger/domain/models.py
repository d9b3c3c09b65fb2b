"""Domain models for pm_ledger: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from src.pm_common.enums import TransactionStatus, TransactionType

# Purchase rows carrying this reason are free grants: they credit total_earned.
SIGNUP_BONUS_REASON = "signup_bonus"


@dataclass(frozen=True)
class UserBalance:
    user_id: str
    available_tokens: float
    committed_tokens: float
    total_earned: float
    total_spent: float        # USD, accumulated by purchases
    version: int              # optimistic lock, +1 per mutation
    last_updated: datetime

    @property
    def total_tokens(self) -> float:
        return self.available_tokens + self.committed_tokens

    @property
    def net_earned(self) -> float:
        return self.total_earned - self.total_spent

    def with_changes(self, **changes: Any) -> "UserBalance":
        return replace(self, **changes)


@dataclass
class TransactionMetadata:
    """Typed fields known to the ledger; free-form keys go in `extra`."""

    payment_reference: str | None = None
    package_id: str | None = None
    amount_spent_usd: float | None = None
    market_id: str | None = None
    market_title: str | None = None
    position: str | None = None
    option_id: str | None = None
    odds: float | None = None
    potential_winning: int | None = None
    tokens_committed: int | None = None
    reason: str | None = None
    reverses_transaction_id: str | None = None   # set on compensating rows only
    reversed_type: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class TokenTransaction:
    id: str
    user_id: str
    type: TransactionType
    amount: float                    # always > 0; direction comes from type
    balance_before: float            # available_tokens snapshot
    balance_after: float
    timestamp: datetime
    status: TransactionStatus = TransactionStatus.COMPLETED
    related_id: str | None = None    # commitment id (commit/win/loss/refund) or payment ref
    metadata: TransactionMetadata = field(default_factory=TransactionMetadata)
