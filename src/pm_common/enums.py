"""Global enums: must match DB CHECK constraints exactly."""

from enum import Enum


class MarketStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class Position(str, Enum):
    """Legacy binary side. Derived from option_id: first option <-> YES."""
    YES = "yes"
    NO = "no"


class TransactionType(str, Enum):
    PURCHASE = "purchase"
    COMMIT = "commit"
    WIN = "win"
    LOSS = "loss"
    REFUND = "refund"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class CommitmentStatus(str, Enum):
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"
    REFUNDED = "refunded"


class CommitmentSource(str, Enum):
    WEB = "web"
    MOBILE = "mobile"
    API = "api"


class SettlementOutcome(str, Enum):
    """Terminal transition applied to an active commitment."""
    WON = "won"
    LOST = "lost"
    REFUNDED = "refunded"


class EvidenceType(str, Enum):
    URL = "url"
    SCREENSHOT = "screenshot"
    DESCRIPTION = "description"
