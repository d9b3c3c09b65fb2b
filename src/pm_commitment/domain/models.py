"""Domain models for pm_commitment: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.pm_common.enums import CommitmentSource, CommitmentStatus, Position


@dataclass
class OddsSnapshot:
    """Pool state at the instant of commitment. Never updated afterwards."""

    yes_odds: float
    no_odds: float
    total_yes_tokens: int
    total_no_tokens: int
    total_participants: int
    # Populated only for markets with more than two options
    option_odds: dict[str, float] | None = None
    option_tokens: dict[str, int] | None = None
    option_participants: dict[str, int] | None = None


@dataclass
class ClientInfo:
    source: CommitmentSource = CommitmentSource.WEB
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass
class CommitmentMetadata:
    market_status: str
    market_title: str
    market_ends_at: datetime | None
    odds_snapshot: OddsSnapshot
    user_balance_at_commitment: float
    commitment_source: CommitmentSource = CommitmentSource.WEB
    ip_address: str | None = None
    user_agent: str | None = None
    selected_option_text: str | None = None
    market_option_count: int = 2
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class PredictionCommitment:
    id: str
    user_id: str
    market_id: str
    option_id: str
    position: Position               # derived from option_id, kept for legacy readers
    tokens_committed: int
    odds: float
    potential_winning: int
    status: CommitmentStatus
    committed_at: datetime
    metadata: CommitmentMetadata
    resolved_at: datetime | None = None

    @property
    def prediction_id(self) -> str:
        """Legacy alias of market_id."""
        return self.market_id

    @property
    def is_active(self) -> bool:
        return self.status == CommitmentStatus.ACTIVE


@dataclass
class CommitmentRequest:
    """Normalized create/validate request. market_id already resolved from prediction_id."""

    user_id: str
    market_id: str
    tokens_to_commit: Any            # validated, not trusted: may arrive as float/str
    option_id: str | None = None
    position: Position | None = None
    client_info: ClientInfo = field(default_factory=ClientInfo)
