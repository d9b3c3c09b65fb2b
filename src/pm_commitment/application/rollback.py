"""CommitmentRollbackService: undoing stakes and ledger rows.

Ledger rows are never edited. Rolling one back appends a compensating row
whose metadata.reverses_transaction_id names the original, moves the balance
back through the version-guarded write and, for stake rows, moves the
commitment back in the same transaction:

  original  compensating  balance                                 commitment
  purchase  refund        available -= tokens, spent -= usd       -
  commit    refund        available += stake, committed -= stake  active   -> refunded
  win       loss          available -= payout, earned -= winnings won      -> lost
  loss      refund        available += stake                      lost     -> refunded
  refund    commit        available -= stake, committed += stake  refunded -> active

A row is rolled back at most once, a compensating row never, and the signup
bonus not at all.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pm_commitment.application.schemas import (
    CommitmentResponse,
    MarketRollbackFailure,
    MarketRollbackReport,
    RollbackEligibilityResponse,
    RollbackHistoryResponse,
    SettlementResponse,
    TransactionRollbackResponse,
)
from src.pm_commitment.application.settlement import CommitmentSettlementService
from src.pm_commitment.domain.models import PredictionCommitment
from src.pm_commitment.domain.repository import CommitmentRepositoryProtocol
from src.pm_commitment.infrastructure.persistence import CommitmentRepository
from src.pm_common.datetime_utils import ensure_utc, utc_now
from src.pm_common.enums import CommitmentStatus, TransactionStatus, TransactionType
from src.pm_common.errors import (
    AppError,
    BalanceNotFoundError,
    CommitmentNotFoundError,
    InvalidInputError,
    RollbackNotAllowedError,
    TransactionNotFoundError,
)
from src.pm_common.retry import run_with_retry
from src.pm_common.validation import require_user_id
from src.pm_ledger.application.schemas import (
    BalanceResponse,
    TransactionItem,
    ensure_valid_balance,
    ensure_valid_transaction,
)
from src.pm_ledger.domain.balance_math import (
    after_commitment,
    after_loss_reversal,
    after_purchase_reversal,
    after_refund,
    after_win_reversal,
)
from src.pm_ledger.domain.models import SIGNUP_BONUS_REASON, TokenTransaction, UserBalance
from src.pm_ledger.domain.repository import LedgerRepositoryProtocol
from src.pm_ledger.domain.transactions import record_transaction
from src.pm_ledger.infrastructure.persistence import LedgerRepository

logger = logging.getLogger(__name__)

COMPENSATING_TYPE = {
    TransactionType.PURCHASE: TransactionType.REFUND,
    TransactionType.COMMIT: TransactionType.REFUND,
    TransactionType.WIN: TransactionType.LOSS,
    TransactionType.LOSS: TransactionType.REFUND,
    TransactionType.REFUND: TransactionType.COMMIT,
}

# Stake rows: status the original left the commitment in -> status after rollback
_STATUS_REVERSAL = {
    TransactionType.COMMIT: (CommitmentStatus.ACTIVE, CommitmentStatus.REFUNDED),
    TransactionType.WIN: (CommitmentStatus.WON, CommitmentStatus.LOST),
    TransactionType.LOSS: (CommitmentStatus.LOST, CommitmentStatus.REFUNDED),
    TransactionType.REFUND: (CommitmentStatus.REFUNDED, CommitmentStatus.ACTIVE),
}


def rollback_blocker(commitment: PredictionCommitment, now: datetime) -> str | None:
    """Why a commitment cannot be rolled back, or None when it can."""
    if not commitment.is_active:
        return f"Commitment is already {commitment.status.value}"
    age = now - ensure_utc(commitment.committed_at)
    if age > timedelta(hours=settings.ROLLBACK_MAX_AGE_HOURS):
        return "Commitment is too old to roll back"
    return None


def ensure_reversible(tx: TokenTransaction) -> None:
    target = f"transaction {tx.id}"
    if tx.status != TransactionStatus.COMPLETED:
        raise RollbackNotAllowedError(target, f"status is {tx.status.value}")
    if tx.metadata.reverses_transaction_id:
        raise RollbackNotAllowedError(target, "it is itself a rollback")
    if tx.type == TransactionType.PURCHASE and tx.metadata.reason == SIGNUP_BONUS_REASON:
        raise RollbackNotAllowedError(target, "the signup bonus cannot be reversed")


def reversed_balance(balance: UserBalance, original: TokenTransaction, stake: int) -> UserBalance:
    amount = original.amount
    if original.type == TransactionType.PURCHASE:
        return after_purchase_reversal(balance, amount, original.metadata.amount_spent_usd or 0.0)
    if original.type == TransactionType.COMMIT:
        return after_refund(balance, amount)
    if original.type == TransactionType.WIN:
        return after_win_reversal(balance, amount, amount - stake)
    if original.type == TransactionType.LOSS:
        return after_loss_reversal(balance, amount)
    return after_commitment(balance, amount)


class CommitmentRollbackService:
    def __init__(
        self,
        ledger_repo: LedgerRepositoryProtocol | None = None,
        commitment_repo: CommitmentRepositoryProtocol | None = None,
    ) -> None:
        self._ledger: LedgerRepositoryProtocol = ledger_repo or LedgerRepository()
        self._commitments: CommitmentRepositoryProtocol = (
            commitment_repo or CommitmentRepository()
        )
        self._settlement = CommitmentSettlementService(self._ledger, self._commitments)

    # ------------------------------------------------------------------
    # Commitments
    # ------------------------------------------------------------------

    async def can_rollback(
        self, db: AsyncSession, commitment_id: str
    ) -> RollbackEligibilityResponse:
        commitment = await self._commitments.get_commitment(db, commitment_id)
        if commitment is None:
            return RollbackEligibilityResponse(
                commitment_id=commitment_id, can_rollback=False, reason="Commitment not found"
            )
        blocker = rollback_blocker(commitment, utc_now())
        return RollbackEligibilityResponse(
            commitment_id=commitment_id,
            can_rollback=blocker is None,
            reason=blocker,
            commitment=CommitmentResponse.from_domain(commitment),
        )

    async def rollback_commitment(
        self, db: AsyncSession, commitment_id: str, reason: str = "manual_refund"
    ) -> SettlementResponse:
        """Refund one active commitment while it is still young enough."""
        commitment = await self._commitments.get_commitment(db, commitment_id)
        if commitment is None:
            raise CommitmentNotFoundError(commitment_id)
        blocker = rollback_blocker(commitment, utc_now())
        if blocker is not None:
            raise RollbackNotAllowedError(f"commitment {commitment_id}", blocker)
        return await self._settlement.refund_commitment(db, commitment_id, reason=reason)

    async def rollback_market_commitments(
        self, db: AsyncSession, market_id: str, reason: str = "market_cancelled"
    ) -> MarketRollbackReport:
        """Refund every active commitment on a market, regardless of age.

        Each refund commits on its own; one failure is recorded and the rest
        still run.
        """
        if not market_id or not market_id.strip():
            raise InvalidInputError("market_id is required")
        commitments = await self._commitments.list_active_commitments_for_market(db, market_id)
        report = MarketRollbackReport(market_id=market_id, total_commitments=len(commitments))

        for commitment in commitments:
            try:
                settled = await self._settlement.refund_commitment(
                    db, commitment.id, reason=reason
                )
            except (AppError, SQLAlchemyError) as exc:
                report.failures.append(
                    MarketRollbackFailure(
                        commitment_id=commitment.id, user_id=commitment.user_id, error=str(exc)
                    )
                )
                continue
            report.refunded.append(settled)
            report.tokens_returned += commitment.tokens_committed

        logger.info(
            "Market rollback finished: market=%s total=%d refunded=%d failed=%d",
            market_id, report.total_commitments, len(report.refunded), len(report.failures),
        )
        return report

    # ------------------------------------------------------------------
    # Ledger rows
    # ------------------------------------------------------------------

    async def rollback_transaction(
        self, db: AsyncSession, transaction_id: str, reason: str = "manual_refund"
    ) -> TransactionRollbackResponse:
        if not transaction_id or not transaction_id.strip():
            raise InvalidInputError("transaction_id is required")

        async def _attempt() -> TransactionRollbackResponse:
            original = await self._ledger.get_transaction(db, transaction_id)
            if original is None:
                raise TransactionNotFoundError(transaction_id)
            ensure_reversible(original)
            existing = await self._ledger.find_reversal(db, original.id)
            if existing is not None:
                raise RollbackNotAllowedError(
                    f"transaction {original.id}", f"already rolled back by {existing.id}"
                )
            balance = await self._ledger.get_balance(db, original.user_id)
            if balance is None:
                raise BalanceNotFoundError(original.user_id)

            commitment = None
            stake = 0
            if original.type in _STATUS_REVERSAL:
                commitment = await self._stake_commitment(db, original)
                stake = commitment.tokens_committed

            after = reversed_balance(balance, original, stake)
            tx = record_transaction(
                COMPENSATING_TYPE[original.type],
                original.amount,
                balance,
                after,
                related_id=original.related_id,
                metadata=replace(
                    original.metadata,
                    reason=reason,
                    tokens_committed=stake or original.metadata.tokens_committed,
                    reverses_transaction_id=original.id,
                    reversed_type=original.type.value,
                    extra=dict(original.metadata.extra),
                ),
            )
            ensure_valid_balance(after)
            ensure_valid_transaction(tx)

            if commitment is not None:
                expected, new_status = _STATUS_REVERSAL[original.type]
                reopened = new_status == CommitmentStatus.ACTIVE
                commitment = await self._commitments.update_commitment_status(
                    db, commitment.id, expected, new_status, None if reopened else utc_now()
                )
            saved = await self._ledger.save_balance(db, after, balance.version)
            await self._ledger.append_transaction(db, tx)
            return TransactionRollbackResponse(
                reversed_transaction_id=original.id,
                transaction=TransactionItem.from_domain(tx),
                balance=BalanceResponse.from_domain(saved),
                commitment=CommitmentResponse.from_domain(commitment) if commitment else None,
            )

        result = await run_with_retry(
            db,
            _attempt,
            attempts=settings.COMMIT_MAX_RETRIES,
            label=f"rollback:{transaction_id}",
        )
        logger.info(
            "Transaction rolled back: id=%s by=%s type=%s reason=%s",
            transaction_id, result.transaction.id, result.transaction.type, reason,
        )
        return result

    async def _stake_commitment(
        self, db: AsyncSession, original: TokenTransaction
    ) -> PredictionCommitment:
        expected, _ = _STATUS_REVERSAL[original.type]
        commitment = (
            await self._commitments.get_commitment(db, original.related_id)
            if original.related_id else None
        )
        if commitment is None:
            raise CommitmentNotFoundError(original.related_id or "(none)")
        if commitment.status != expected:
            raise RollbackNotAllowedError(
                f"transaction {original.id}",
                f"commitment {commitment.id} is {commitment.status.value}, "
                f"expected {expected.value}",
            )
        return commitment

    async def get_rollback_history(
        self, db: AsyncSession, user_id: str
    ) -> RollbackHistoryResponse:
        """Refund rows and compensating rows, newest first."""
        user_id = require_user_id(user_id)
        rows = await self._ledger.list_completed_transactions(db, user_id)
        items = [
            TransactionItem.from_domain(t)
            for t in reversed(rows)
            if t.type == TransactionType.REFUND or t.metadata.reverses_transaction_id
        ]
        return RollbackHistoryResponse(user_id=user_id, items=items)
