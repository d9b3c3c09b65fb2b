"""CommitmentSettlementService: terminal transitions of an active commitment.

won      -> after_win(stake, winnings); ledger `win` row, amount = stake + winnings
lost     -> after_loss(stake);          ledger `loss` row, amount = stake
refunded -> after_refund(stake);        ledger `refund` row, amount = stake

The commitment status update is guarded on `active` and the balance write on
version; both land in the same transaction as the ledger row.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pm_commitment.application.schemas import CommitmentResponse, SettlementResponse
from src.pm_commitment.domain.models import PredictionCommitment
from src.pm_commitment.domain.repository import CommitmentRepositoryProtocol
from src.pm_commitment.infrastructure.persistence import CommitmentRepository
from src.pm_common.datetime_utils import utc_now
from src.pm_common.enums import CommitmentStatus, SettlementOutcome, TransactionType
from src.pm_common.errors import (
    BalanceNotFoundError,
    CommitmentNotActiveError,
    CommitmentNotFoundError,
    InvalidInputError,
)
from src.pm_common.retry import run_with_retry
from src.pm_ledger.application.schemas import ensure_valid_balance, ensure_valid_transaction
from src.pm_ledger.domain.balance_math import after_loss, after_refund, after_win
from src.pm_ledger.domain.models import TransactionMetadata, UserBalance
from src.pm_ledger.domain.repository import LedgerRepositoryProtocol
from src.pm_ledger.domain.transactions import record_transaction
from src.pm_ledger.infrastructure.persistence import LedgerRepository

logger = logging.getLogger(__name__)

_STATUS_FOR_OUTCOME = {
    SettlementOutcome.WON: CommitmentStatus.WON,
    SettlementOutcome.LOST: CommitmentStatus.LOST,
    SettlementOutcome.REFUNDED: CommitmentStatus.REFUNDED,
}


def default_winnings(commitment: PredictionCommitment) -> int:
    """Payout beyond the stake implied by the odds locked in at commitment."""
    return max(0, commitment.potential_winning - commitment.tokens_committed)


def _transition(
    balance: UserBalance,
    commitment: PredictionCommitment,
    outcome: SettlementOutcome,
    tokens_won: int,
) -> tuple[UserBalance, TransactionType, int]:
    stake = commitment.tokens_committed
    if outcome == SettlementOutcome.WON:
        return after_win(balance, stake, tokens_won), TransactionType.WIN, stake + tokens_won
    if outcome == SettlementOutcome.LOST:
        return after_loss(balance, stake), TransactionType.LOSS, stake
    return after_refund(balance, stake), TransactionType.REFUND, stake


class CommitmentSettlementService:
    def __init__(
        self,
        ledger_repo: LedgerRepositoryProtocol | None = None,
        commitment_repo: CommitmentRepositoryProtocol | None = None,
    ) -> None:
        self._ledger: LedgerRepositoryProtocol = ledger_repo or LedgerRepository()
        self._commitments: CommitmentRepositoryProtocol = (
            commitment_repo or CommitmentRepository()
        )

    async def settle_commitment(
        self,
        db: AsyncSession,
        commitment_id: str,
        outcome: SettlementOutcome,
        tokens_won: int | None = None,
        reason: str | None = None,
    ) -> SettlementResponse:
        if tokens_won is not None and tokens_won < 0:
            raise InvalidInputError("tokens_won cannot be negative")

        async def _attempt() -> SettlementResponse:
            commitment = await self._commitments.get_commitment(db, commitment_id)
            if commitment is None:
                raise CommitmentNotFoundError(commitment_id)
            if not commitment.is_active:
                raise CommitmentNotActiveError(commitment_id, commitment.status.value)
            balance = await self._ledger.get_balance(db, commitment.user_id)
            if balance is None:
                raise BalanceNotFoundError(commitment.user_id)

            won = default_winnings(commitment) if tokens_won is None else tokens_won
            after, tx_type, amount = _transition(balance, commitment, outcome, won)
            tx = record_transaction(
                tx_type,
                amount,
                balance,
                after,
                related_id=commitment.id,
                metadata=TransactionMetadata(
                    market_id=commitment.market_id,
                    market_title=commitment.metadata.market_title,
                    position=commitment.position.value,
                    option_id=commitment.option_id,
                    odds=commitment.odds,
                    tokens_committed=commitment.tokens_committed,
                    reason=reason,
                ),
            )
            ensure_valid_balance(after)
            ensure_valid_transaction(tx)

            settled = await self._commitments.update_commitment_status(
                db,
                commitment.id,
                CommitmentStatus.ACTIVE,
                _STATUS_FOR_OUTCOME[outcome],
                utc_now(),
            )
            saved = await self._ledger.save_balance(db, after, balance.version)
            await self._ledger.append_transaction(db, tx)
            return SettlementResponse(
                commitment=CommitmentResponse.from_domain(settled),
                available_tokens=saved.available_tokens,
                committed_tokens=saved.committed_tokens,
                balance_version=saved.version,
            )

        result = await run_with_retry(
            db, _attempt, attempts=settings.COMMIT_MAX_RETRIES, label=f"settle:{commitment_id}"
        )
        logger.info(
            "Commitment settled: id=%s outcome=%s reason=%s", commitment_id, outcome.value, reason
        )
        return result

    async def refund_commitment(
        self, db: AsyncSession, commitment_id: str, reason: str = "manual_refund"
    ) -> SettlementResponse:
        """Rollback path: return the stake to available (market cancelled, failed write, ...)."""
        return await self.settle_commitment(
            db, commitment_id, SettlementOutcome.REFUNDED, reason=reason
        )
