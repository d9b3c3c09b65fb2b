"""Pydantic schemas for pm_ledger: record validation, requests, responses."""

import base64
import binascii
import json
import math
from dataclasses import asdict
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.pm_common.datetime_utils import parse_iso
from src.pm_common.enums import TransactionStatus, TransactionType
from src.pm_common.errors import IntegrityViolationError, InternalError
from src.pm_common.tokens import format_tokens, format_usd
from src.pm_ledger.domain.balance_math import net_profit_loss, total_balance
from src.pm_ledger.domain.models import TokenTransaction, UserBalance

# ---------------------------------------------------------------------------
# Cursor-based pagination utilities
# ---------------------------------------------------------------------------


def cursor_encode(last_timestamp: datetime, last_id: str) -> str:
    """Encode the (timestamp, id) of the last row into an opaque Base64 cursor.

    Timestamps are not unique, so the id breaks ties in the same order the
    listing sorts by.
    """
    payload = json.dumps({"ts": last_timestamp.isoformat(), "id": last_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> tuple[datetime, str] | None:
    """Decode a cursor back to (timestamp, id). Returns None on a malformed cursor."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        ts = parse_iso(payload["ts"])
        last_id = payload["id"]
    except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError):
        return None
    if ts is None or not isinstance(last_id, str):
        return None
    return ts, last_id


# ---------------------------------------------------------------------------
# Record schemas: reject malformed records before they are written
# ---------------------------------------------------------------------------


class UserBalanceRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., min_length=1)
    available_tokens: float = Field(..., ge=0)
    committed_tokens: float = Field(..., ge=0)
    total_earned: float = Field(..., ge=0)
    total_spent: float = Field(..., ge=0)
    version: int = Field(..., ge=1)
    last_updated: datetime | None = None

    @field_validator("available_tokens", "committed_tokens", "total_earned", "total_spent")
    @classmethod
    def _finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("must be a finite number")
        return v


class TransactionMetadataRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    payment_reference: str | None = None
    package_id: str | None = None
    amount_spent_usd: float | None = Field(None, ge=0)
    market_id: str | None = None
    market_title: str | None = None
    position: str | None = None
    option_id: str | None = None
    odds: float | None = Field(None, gt=0)
    potential_winning: int | None = Field(None, ge=0)
    tokens_committed: int | None = Field(None, gt=0)
    reason: str | None = None
    reverses_transaction_id: str | None = Field(None, min_length=1)
    reversed_type: TransactionType | None = None
    extra: dict[str, object] = Field(default_factory=dict)


class TokenTransactionRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    type: TransactionType
    amount: float = Field(..., gt=0)
    balance_before: float
    balance_after: float
    related_id: str | None = None
    metadata: TransactionMetadataRecord = Field(default_factory=TransactionMetadataRecord)
    timestamp: datetime
    status: TransactionStatus


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class PurchaseRequest(BaseModel):
    tokens: int = Field(..., gt=0, description="Whole tokens credited")
    amount_spent_usd: float = Field(..., ge=0, description="USD paid, recorded in total_spent")
    package_id: str | None = None
    payment_reference: str | None = Field(None, description="External payment id")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    user_id: str
    available_tokens: float
    available_display: str
    committed_tokens: float
    committed_display: str
    total_tokens: float
    total_display: str
    total_earned: float
    total_spent: float
    total_spent_display: str
    net_profit_loss: float
    version: int
    last_updated: str

    @classmethod
    def from_domain(cls, balance: UserBalance) -> "BalanceResponse":
        total = total_balance(balance)
        return cls(
            user_id=balance.user_id,
            available_tokens=balance.available_tokens,
            available_display=format_tokens(balance.available_tokens),
            committed_tokens=balance.committed_tokens,
            committed_display=format_tokens(balance.committed_tokens),
            total_tokens=total,
            total_display=format_tokens(total),
            total_earned=balance.total_earned,
            total_spent=balance.total_spent,
            total_spent_display=format_usd(balance.total_spent),
            net_profit_loss=net_profit_loss(balance),
            version=balance.version,
            last_updated=balance.last_updated.isoformat(),
        )


class TransactionItem(BaseModel):
    id: str
    type: str
    amount: float
    amount_display: str
    balance_before: float
    balance_after: float
    related_id: str | None
    status: str
    timestamp: str
    metadata: dict[str, object]

    @classmethod
    def from_domain(cls, tx: TokenTransaction) -> "TransactionItem":
        meta = {k: v for k, v in vars(tx.metadata).items() if v not in (None, {})}
        return cls(
            id=tx.id,
            type=tx.type.value,
            amount=tx.amount,
            amount_display=format_tokens(tx.amount),
            balance_before=tx.balance_before,
            balance_after=tx.balance_after,
            related_id=tx.related_id,
            status=tx.status.value,
            timestamp=tx.timestamp.isoformat(),
            metadata=meta,
        )


class TransactionListResponse(BaseModel):
    items: list[TransactionItem]
    next_cursor: str | None
    has_more: bool


class PurchaseResponse(BaseModel):
    balance: BalanceResponse
    transaction: TransactionItem | None


# ---------------------------------------------------------------------------
# Write guards
# ---------------------------------------------------------------------------


def ensure_valid_balance(balance: UserBalance) -> None:
    """Raise IntegrityViolationError naming each rejected field."""
    try:
        UserBalanceRecord.model_validate(asdict(balance))
    except ValidationError as exc:
        violations = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        raise IntegrityViolationError(violations) from exc


def ensure_valid_transaction(tx: TokenTransaction) -> None:
    try:
        TokenTransactionRecord.model_validate(asdict(tx))
    except ValidationError as exc:
        raise InternalError(
            f"Refusing to write malformed transaction {tx.id}: {exc.error_count()} errors"
        ) from exc
