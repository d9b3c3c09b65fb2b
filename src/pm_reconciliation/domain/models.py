"""Domain models for pm_reconciliation: pure dataclasses."""

from dataclasses import dataclass, field
from datetime import datetime

from src.pm_ledger.domain.models import UserBalance


@dataclass(frozen=True)
class CalculatedBalance:
    available_tokens: float
    committed_tokens: float
    total_earned: float
    total_spent: float


@dataclass(frozen=True)
class BalanceInconsistency:
    field: str
    stored_value: float
    calculated_value: float
    difference: float


@dataclass
class BalanceAuditResult:
    user_id: str
    stored_balance: UserBalance | None
    calculated_balance: CalculatedBalance
    inconsistencies: list[BalanceInconsistency]
    transaction_count: int
    active_commitment_count: int
    audited_at: datetime

    @property
    def is_consistent(self) -> bool:
        return not self.inconsistencies


@dataclass
class IntegrityReport:
    violations: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.violations


@dataclass
class ReconciliationReport:
    total_users_checked: int = 0
    users_with_inconsistencies: int = 0
    inconsistencies_found: int = 0
    users_fixed: int = 0
    errors: list[str] = field(default_factory=list)
    execution_time_ms: float = 0.0


@dataclass
class BalanceAuditEntry:
    """Trail of one overwrite performed by fix_user_balance."""

    id: str
    user_id: str
    previous: UserBalance | None
    corrected: UserBalance
    reason: str
    created_at: datetime


@dataclass
class HealthReport:
    total_users: int
    sampled_users: int
    users_with_inconsistencies: int
    inconsistency_rate: float
    integrity_violations: int
    total_tokens_in_circulation: float
    total_committed_tokens: float
    average_balance: float
    generated_at: datetime
