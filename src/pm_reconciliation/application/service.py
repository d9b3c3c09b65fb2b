"""BalanceReconciliationService: audit, repair and report on stored balances.

The stored UserBalance is a cache of what the append-only ledger says. An
audit replays the ledger (plus active commitments) and diffs; a fix
overwrites the cache through the same version-guarded write as every other
balance mutation and leaves a row in balance_audit_log.
"""

import logging
import time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pm_commitment.domain.repository import CommitmentRepositoryProtocol
from src.pm_commitment.infrastructure.persistence import CommitmentRepository
from src.pm_common.datetime_utils import utc_now
from src.pm_common.errors import AppError, BalanceNotFoundError
from src.pm_common.id_generator import generate_id
from src.pm_common.retry import run_with_retry
from src.pm_common.validation import require_user_id
from src.pm_ledger.application.schemas import ensure_valid_balance
from src.pm_ledger.domain.models import UserBalance
from src.pm_ledger.domain.repository import LedgerRepositoryProtocol
from src.pm_ledger.infrastructure.persistence import LedgerRepository
from src.pm_reconciliation.application.schemas import BalanceSnapshot
from src.pm_reconciliation.domain.integrity import validate_balance_integrity
from src.pm_reconciliation.domain.models import (
    BalanceAuditEntry,
    BalanceAuditResult,
    HealthReport,
    ReconciliationReport,
)
from src.pm_reconciliation.domain.replay import find_inconsistencies, recompute_balance
from src.pm_reconciliation.domain.repository import AuditLogRepositoryProtocol
from src.pm_reconciliation.infrastructure.persistence import AuditLogRepository

logger = logging.getLogger(__name__)


class BalanceReconciliationService:
    def __init__(
        self,
        ledger_repo: LedgerRepositoryProtocol | None = None,
        commitment_repo: CommitmentRepositoryProtocol | None = None,
        audit_repo: AuditLogRepositoryProtocol | None = None,
    ) -> None:
        self._ledger: LedgerRepositoryProtocol = ledger_repo or LedgerRepository()
        self._commitments: CommitmentRepositoryProtocol = (
            commitment_repo or CommitmentRepository()
        )
        self._audit_log: AuditLogRepositoryProtocol = audit_repo or AuditLogRepository()

    async def audit_user_balance(self, db: AsyncSession, user_id: str) -> BalanceAuditResult:
        user_id = require_user_id(user_id)
        stored = await self._ledger.get_balance(db, user_id)
        transactions = await self._ledger.list_completed_transactions(db, user_id)
        active = await self._commitments.list_active_commitments(db, user_id)

        calculated = recompute_balance(transactions, active)
        inconsistencies = find_inconsistencies(stored, calculated, settings.BALANCE_TOLERANCE)
        if inconsistencies:
            drift = ", ".join(
                f"{i.field} {i.stored_value:g}->{i.calculated_value:g}" for i in inconsistencies
            )
            logger.warning("Balance drift for user=%s: %s", user_id, drift)
        return BalanceAuditResult(
            user_id=user_id,
            stored_balance=stored,
            calculated_balance=calculated,
            inconsistencies=inconsistencies,
            transaction_count=len(transactions),
            active_commitment_count=len(active),
            audited_at=utc_now(),
        )

    async def fix_user_balance(self, db: AsyncSession, user_id: str) -> UserBalance:
        """Overwrite the stored balance with the ledger's figures. Idempotent."""
        user_id = require_user_id(user_id)
        overwritten: list[BalanceAuditEntry] = []

        async def _attempt() -> UserBalance:
            overwritten.clear()
            audit = await self.audit_user_balance(db, user_id)
            stored = audit.stored_balance
            if audit.is_consistent:
                if stored is None:
                    raise BalanceNotFoundError(user_id)
                return stored

            calc = audit.calculated_balance
            corrected = UserBalance(
                user_id=user_id,
                available_tokens=calc.available_tokens,
                committed_tokens=calc.committed_tokens,
                total_earned=calc.total_earned,
                total_spent=calc.total_spent,
                version=(stored.version if stored else 0) + 1,
                last_updated=utc_now(),
            )
            ensure_valid_balance(corrected)
            saved = await self._ledger.save_balance(
                db, corrected, stored.version if stored else None
            )
            entry = BalanceAuditEntry(
                id=generate_id("adj"),
                user_id=user_id,
                previous=stored,
                corrected=saved,
                reason="reconciliation: " + ", ".join(i.field for i in audit.inconsistencies),
                created_at=utc_now(),
            )
            await self._audit_log.append_entry(db, entry)
            overwritten.append(entry)
            return saved

        saved = await run_with_retry(
            db, _attempt, attempts=settings.COMMIT_MAX_RETRIES, label=f"fix:{user_id}"
        )
        if overwritten:
            logger.warning(
                "Balance overwritten by reconciliation: user=%s version=%d %s",
                user_id, saved.version, overwritten[0].reason,
            )
        return saved

    async def reconcile_multiple_users(
        self, db: AsyncSession, user_ids: list[str]
    ) -> ReconciliationReport:
        report = ReconciliationReport()
        if not user_ids:
            return report

        start = time.perf_counter()
        for user_id in user_ids:
            report.total_users_checked += 1
            try:
                audit = await self.audit_user_balance(db, user_id)
            except (AppError, SQLAlchemyError) as exc:
                report.errors.append(f"Failed to audit balance for user {user_id}: {exc}")
                continue

            if audit.is_consistent:
                continue
            report.users_with_inconsistencies += 1
            report.inconsistencies_found += len(audit.inconsistencies)
            try:
                await self.fix_user_balance(db, user_id)
                report.users_fixed += 1
            except (AppError, SQLAlchemyError) as exc:
                report.errors.append(f"Failed to fix balance for user {user_id}: {exc}")

        report.execution_time_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Reconciliation finished: checked=%d inconsistent=%d fixed=%d errors=%d (%.0fms)",
            report.total_users_checked,
            report.users_with_inconsistencies,
            report.users_fixed,
            len(report.errors),
            report.execution_time_ms,
        )
        return report

    async def reconcile_all_users(self, db: AsyncSession) -> ReconciliationReport:
        user_ids = await self._ledger.list_user_ids(db)
        return await self.reconcile_multiple_users(db, user_ids)

    async def generate_health_report(self, db: AsyncSession) -> HealthReport:
        """System totals plus an audit-only sample; nothing is fixed here."""
        user_ids = await self._ledger.list_user_ids(db)
        balances = [b for b in [await self._ledger.get_balance(db, u) for u in user_ids] if b]

        circulation = sum(b.available_tokens + b.committed_tokens for b in balances)
        committed = sum(b.committed_tokens for b in balances)
        violations = sum(1 for b in balances if not validate_balance_integrity(b).is_valid)

        sample = user_ids[: settings.HEALTH_REPORT_SAMPLE_SIZE]
        inconsistent = 0
        for user_id in sample:
            audit = await self.audit_user_balance(db, user_id)
            if not audit.is_consistent:
                inconsistent += 1

        return HealthReport(
            total_users=len(balances),
            sampled_users=len(sample),
            users_with_inconsistencies=inconsistent,
            inconsistency_rate=inconsistent / len(sample) if sample else 0.0,
            integrity_violations=violations,
            total_tokens_in_circulation=circulation,
            total_committed_tokens=committed,
            average_balance=circulation / len(balances) if balances else 0.0,
            generated_at=utc_now(),
        )

    async def create_balance_snapshot(self, db: AsyncSession, user_id: str) -> BalanceSnapshot:
        audit = await self.audit_user_balance(db, user_id)
        integrity = (
            validate_balance_integrity(audit.stored_balance).violations
            if audit.stored_balance is not None else []
        )
        return BalanceSnapshot.from_audit(audit, integrity)

    async def list_audit_log(
        self, db: AsyncSession, user_id: str, limit: int = 20
    ) -> list[BalanceAuditEntry]:
        return await self._audit_log.list_entries(db, require_user_id(user_id), limit)
