"""Pydantic schemas for reconciliation reports and admin requests."""

from dataclasses import asdict
from typing import Any

from pydantic import BaseModel, Field

from src.pm_common.tokens import format_percentage, format_tokens
from src.pm_ledger.application.schemas import BalanceResponse
from src.pm_reconciliation.domain.models import (
    BalanceAuditEntry,
    BalanceAuditResult,
    HealthReport,
    IntegrityReport,
    ReconciliationReport,
)


class ReconcileUsersRequest(BaseModel):
    user_ids: list[str] = Field(..., max_length=1000)


class BalanceIntegrityRequest(BaseModel):
    """Raw field values, deliberately loose: the integrity check itself reports bad types."""

    user_id: str | None = None
    available_tokens: Any = None
    committed_tokens: Any = None
    total_earned: Any = None
    total_spent: Any = None
    version: Any = None


class InconsistencyItem(BaseModel):
    field: str
    stored_value: float
    calculated_value: float
    difference: float


class CalculatedBalanceItem(BaseModel):
    available_tokens: float
    committed_tokens: float
    total_earned: float
    total_spent: float


class AuditResponse(BaseModel):
    user_id: str
    stored_balance: BalanceResponse | None
    calculated_balance: CalculatedBalanceItem
    inconsistencies: list[InconsistencyItem]
    is_consistent: bool
    transaction_count: int
    active_commitment_count: int
    audited_at: str

    @classmethod
    def from_domain(cls, audit: BalanceAuditResult) -> "AuditResponse":
        return cls(
            user_id=audit.user_id,
            stored_balance=(
                BalanceResponse.from_domain(audit.stored_balance)
                if audit.stored_balance else None
            ),
            calculated_balance=CalculatedBalanceItem(**asdict(audit.calculated_balance)),
            inconsistencies=[InconsistencyItem(**asdict(i)) for i in audit.inconsistencies],
            is_consistent=audit.is_consistent,
            transaction_count=audit.transaction_count,
            active_commitment_count=audit.active_commitment_count,
            audited_at=audit.audited_at.isoformat(),
        )


class IntegrityResponse(BaseModel):
    is_valid: bool
    violations: list[str]

    @classmethod
    def from_domain(cls, report: IntegrityReport) -> "IntegrityResponse":
        return cls(is_valid=report.is_valid, violations=report.violations)


class ReconciliationReportResponse(BaseModel):
    total_users_checked: int
    users_with_inconsistencies: int
    inconsistencies_found: int
    users_fixed: int
    errors: list[str]
    execution_time_ms: float

    @classmethod
    def from_domain(cls, report: ReconciliationReport) -> "ReconciliationReportResponse":
        return cls(**asdict(report))


class HealthReportResponse(BaseModel):
    total_users: int
    sampled_users: int
    users_with_inconsistencies: int
    inconsistency_rate: float
    inconsistency_rate_display: str
    integrity_violations: int
    total_tokens_in_circulation: float
    circulation_display: str
    total_committed_tokens: float
    average_balance: float
    generated_at: str

    @classmethod
    def from_domain(cls, report: HealthReport) -> "HealthReportResponse":
        data = asdict(report)
        data["generated_at"] = report.generated_at.isoformat()
        return cls(
            **data,
            inconsistency_rate_display=format_percentage(report.inconsistency_rate),
            circulation_display=format_tokens(report.total_tokens_in_circulation),
        )


class BalanceSnapshot(BaseModel):
    user_id: str
    taken_at: str
    balance: BalanceResponse | None
    calculated_balance: CalculatedBalanceItem
    transaction_count: int
    active_commitment_count: int
    is_consistent: bool
    integrity_violations: list[str]

    @classmethod
    def from_audit(cls, audit: BalanceAuditResult, violations: list[str]) -> "BalanceSnapshot":
        return cls(
            user_id=audit.user_id,
            taken_at=audit.audited_at.isoformat(),
            balance=(
                BalanceResponse.from_domain(audit.stored_balance)
                if audit.stored_balance else None
            ),
            calculated_balance=CalculatedBalanceItem(**asdict(audit.calculated_balance)),
            transaction_count=audit.transaction_count,
            active_commitment_count=audit.active_commitment_count,
            is_consistent=audit.is_consistent,
            integrity_violations=violations,
        )


class AuditLogItem(BaseModel):
    id: str
    user_id: str
    previous: BalanceResponse | None
    corrected: BalanceResponse
    reason: str
    created_at: str

    @classmethod
    def from_domain(cls, entry: BalanceAuditEntry) -> "AuditLogItem":
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            previous=BalanceResponse.from_domain(entry.previous) if entry.previous else None,
            corrected=BalanceResponse.from_domain(entry.corrected),
            reason=entry.reason,
            created_at=entry.created_at.isoformat(),
        )
