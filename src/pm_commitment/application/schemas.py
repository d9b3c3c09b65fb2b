"""Pydantic schemas for pm_commitment API and record validation."""

from dataclasses import asdict
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from src.pm_commitment.domain.models import (
    ClientInfo,
    CommitmentRequest,
    PredictionCommitment,
)
from src.pm_common.enums import CommitmentSource, CommitmentStatus, Position, SettlementOutcome
from src.pm_common.errors import InternalError
from src.pm_ledger.application.schemas import BalanceResponse, TransactionItem
from src.pm_common.tokens import format_odds, format_tokens
from src.pm_common.validation import ValidationIssue

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class ClientInfoSchema(BaseModel):
    source: CommitmentSource = CommitmentSource.WEB
    ip_address: str | None = None
    user_agent: str | None = Field(None, max_length=512)

    def to_domain(self) -> ClientInfo:
        return ClientInfo(
            source=self.source, ip_address=self.ip_address, user_agent=self.user_agent
        )


class CommitmentCreateRequest(BaseModel):
    """`prediction_id` is the legacy name of `market_id`; either is accepted.

    `tokens_to_commit` is typed loosely on purpose so a fractional or
    out-of-range amount comes back as a collected INVALID_AMOUNT issue
    rather than a bare 422.
    """

    user_id: str = ""
    market_id: str | None = None
    prediction_id: str | None = None
    option_id: str | None = None
    position: Position | None = None
    tokens_to_commit: int | float
    client_info: ClientInfoSchema = Field(default_factory=ClientInfoSchema)

    @model_validator(mode="after")
    def _alias_market(self) -> "CommitmentCreateRequest":
        if not self.market_id and self.prediction_id:
            self.market_id = self.prediction_id
        return self

    def to_domain(self) -> CommitmentRequest:
        return CommitmentRequest(
            user_id=self.user_id,
            market_id=self.market_id or "",
            tokens_to_commit=self.tokens_to_commit,
            option_id=self.option_id,
            position=self.position,
            client_info=self.client_info.to_domain(),
        )


class BinaryCommitmentRequest(BaseModel):
    user_id: str
    market_id: str
    position: Position
    tokens_to_commit: int | float
    client_info: ClientInfoSchema = Field(default_factory=ClientInfoSchema)


class MultiOptionCommitmentRequest(BaseModel):
    user_id: str
    market_id: str
    option_id: str
    tokens_to_commit: int | float
    client_info: ClientInfoSchema = Field(default_factory=ClientInfoSchema)


class SettleCommitmentRequest(BaseModel):
    outcome: SettlementOutcome
    tokens_won: int | None = Field(None, ge=0, description="Winnings on top of the stake")
    reason: str | None = Field(None, max_length=200)


class RollbackRequest(BaseModel):
    reason: str = Field("manual_refund", min_length=1, max_length=200)


# ---------------------------------------------------------------------------
# Record schema: checked before a commitment row is written
# ---------------------------------------------------------------------------


class PredictionCommitmentRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    market_id: str = Field(..., min_length=1)
    option_id: str = Field(..., min_length=1)
    position: Position
    tokens_committed: int = Field(..., gt=0)
    odds: float = Field(..., gt=0)
    potential_winning: int = Field(..., ge=0)
    status: CommitmentStatus
    committed_at: Any
    resolved_at: Any = None
    metadata: dict[str, Any]


def ensure_valid_commitment(commitment: PredictionCommitment) -> None:
    try:
        PredictionCommitmentRecord.model_validate(asdict(commitment))
    except ValidationError as exc:
        raise InternalError(
            f"Refusing to write malformed commitment {commitment.id}: "
            f"{exc.error_count()} errors"
        ) from exc


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class CommitmentResponse(BaseModel):
    id: str
    user_id: str
    market_id: str
    prediction_id: str
    option_id: str
    position: str
    tokens_committed: int
    tokens_display: str
    odds: float
    odds_display: str
    potential_winning: int
    status: str
    committed_at: str
    resolved_at: str | None
    metadata: dict[str, Any]

    @classmethod
    def from_domain(cls, c: PredictionCommitment) -> "CommitmentResponse":
        metadata = asdict(c.metadata)
        metadata["market_ends_at"] = (
            c.metadata.market_ends_at.isoformat() if c.metadata.market_ends_at else None
        )
        metadata["commitment_source"] = c.metadata.commitment_source.value
        return cls(
            id=c.id,
            user_id=c.user_id,
            market_id=c.market_id,
            prediction_id=c.prediction_id,
            option_id=c.option_id,
            position=c.position.value,
            tokens_committed=c.tokens_committed,
            tokens_display=format_tokens(c.tokens_committed),
            odds=c.odds,
            odds_display=format_odds(c.odds),
            potential_winning=c.potential_winning,
            status=c.status.value,
            committed_at=c.committed_at.isoformat(),
            resolved_at=c.resolved_at.isoformat() if c.resolved_at else None,
            metadata=metadata,
        )


class IssueSchema(BaseModel):
    field: str
    code: str
    message: str

    @classmethod
    def from_issue(cls, issue: ValidationIssue) -> "IssueSchema":
        return cls(field=issue.field, code=issue.code, message=issue.message)


class CommitmentErrorInfo(BaseModel):
    code: str            # VALIDATION_FAILED | CONCURRENT_MODIFICATION | CREATION_FAILED
    message: str
    details: list[IssueSchema] = Field(default_factory=list)
    retryable: bool = False


class CommitmentCreationResult(BaseModel):
    success: bool
    commitment_id: str | None = None
    commitment: CommitmentResponse | None = None
    warnings: list[IssueSchema] = Field(default_factory=list)
    error: CommitmentErrorInfo | None = None


class SettlementResponse(BaseModel):
    commitment: CommitmentResponse
    available_tokens: float
    committed_tokens: float
    balance_version: int


class RollbackEligibilityResponse(BaseModel):
    commitment_id: str
    can_rollback: bool
    reason: str | None = None
    commitment: CommitmentResponse | None = None


class TransactionRollbackResponse(BaseModel):
    reversed_transaction_id: str
    transaction: TransactionItem
    balance: BalanceResponse
    commitment: CommitmentResponse | None = None


class MarketRollbackFailure(BaseModel):
    commitment_id: str
    user_id: str
    error: str


class MarketRollbackReport(BaseModel):
    market_id: str
    total_commitments: int = 0
    refunded: list[SettlementResponse] = Field(default_factory=list)
    failures: list[MarketRollbackFailure] = Field(default_factory=list)
    tokens_returned: int = 0


class RollbackHistoryResponse(BaseModel):
    user_id: str
    items: list[TransactionItem]
