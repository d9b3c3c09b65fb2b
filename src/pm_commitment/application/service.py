"""CommitmentService: atomic commitment creation.

One attempt, inside one database transaction:
  1. read market + balance (with its version), re-run validation
  2. resolve option_id / position, price the stake, snapshot the pool
  3. after_commitment -> version-guarded balance write
  4. insert the commitment and the `commit` ledger row
  5. commit

A lost version race rolls back and repeats the whole attempt, up to
COMMIT_MAX_RETRIES times. Validation failures never write anything.
"""

import logging
from dataclasses import asdict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pm_commitment.application.schemas import (
    CommitmentCreationResult,
    CommitmentErrorInfo,
    CommitmentResponse,
    IssueSchema,
    ensure_valid_commitment,
)
from src.pm_commitment.application.validation import (
    CommitmentValidationService,
    evaluate,
)
from src.pm_commitment.domain.models import (
    ClientInfo,
    CommitmentMetadata,
    CommitmentRequest,
    PredictionCommitment,
)
from src.pm_commitment.domain.pricing import build_odds_snapshot, odds_for_target
from src.pm_commitment.domain.repository import CommitmentRepositoryProtocol
from src.pm_commitment.infrastructure.persistence import CommitmentRepository
from src.pm_common.datetime_utils import utc_now
from src.pm_common.enums import CommitmentStatus, Position, TransactionType
from src.pm_common.errors import (
    AppError,
    CommitmentRejectedError,
    ConcurrentModificationError,
    InsufficientBalanceError,
    InternalError,
)
from src.pm_common.id_generator import new_commitment_id
from src.pm_common.retry import run_with_retry
from src.pm_common.validation import ValidationIssue, ValidationResult
from src.pm_ledger.application.schemas import ensure_valid_balance, ensure_valid_transaction
from src.pm_ledger.domain.balance_math import after_commitment, potential_winnings
from src.pm_ledger.domain.models import TransactionMetadata
from src.pm_ledger.domain.repository import LedgerRepositoryProtocol
from src.pm_ledger.domain.transactions import record_transaction
from src.pm_ledger.infrastructure.persistence import LedgerRepository
from src.pm_market.domain.repository import MarketRepositoryProtocol
from src.pm_market.infrastructure.persistence import MarketRepository

logger = logging.getLogger(__name__)


def _issues(items: list[ValidationIssue]) -> list[IssueSchema]:
    return [IssueSchema.from_issue(i) for i in items]


def _failure(
    code: str, message: str, details: list[IssueSchema] | None = None, retryable: bool = False
) -> CommitmentCreationResult:
    return CommitmentCreationResult(
        success=False,
        error=CommitmentErrorInfo(
            code=code, message=message, details=details or [], retryable=retryable
        ),
    )


class CommitmentService:
    def __init__(
        self,
        ledger_repo: LedgerRepositoryProtocol | None = None,
        commitment_repo: CommitmentRepositoryProtocol | None = None,
        market_repo: MarketRepositoryProtocol | None = None,
    ) -> None:
        self._ledger: LedgerRepositoryProtocol = ledger_repo or LedgerRepository()
        self._commitments: CommitmentRepositoryProtocol = (
            commitment_repo or CommitmentRepository()
        )
        self._markets: MarketRepositoryProtocol = market_repo or MarketRepository()
        self._validator = CommitmentValidationService(
            self._markets, self._ledger, self._commitments
        )

    async def validate_enhanced_commitment_request(
        self, db: AsyncSession, request: CommitmentRequest
    ) -> ValidationResult:
        """Dry run: same checks as create_commitment, no writes."""
        return await self._validator.validate(db, request)

    async def create_commitment(
        self, db: AsyncSession, request: CommitmentRequest
    ) -> CommitmentCreationResult:
        warnings: list[ValidationIssue] = []

        async def _attempt() -> PredictionCommitment:
            market = (
                await self._markets.get_market_by_id(db, request.market_id)
                if request.market_id else None
            )
            balance = (
                await self._ledger.get_balance(db, request.user_id)
                if request.user_id else None
            )
            evaluation = evaluate(request, market, balance)
            warnings[:] = evaluation.result.warnings
            if not evaluation.result.is_valid:
                raise CommitmentRejectedError(
                    evaluation.result.errors[0].message,
                    [asdict(e) for e in evaluation.result.errors],
                )
            if (
                market is None
                or balance is None
                or evaluation.target is None
                or evaluation.tokens is None
            ):
                raise InternalError(
                    f"Commitment evaluation passed without a target: {request.market_id}"
                )
            target, tokens = evaluation.target, evaluation.tokens

            odds = odds_for_target(market, target)
            after = after_commitment(balance, tokens)
            now = utc_now()
            commitment = PredictionCommitment(
                id=new_commitment_id(),
                user_id=request.user_id,
                market_id=market.id,
                option_id=target.option.id,
                position=target.position,
                tokens_committed=tokens,
                odds=odds,
                potential_winning=potential_winnings(tokens, odds),
                status=CommitmentStatus.ACTIVE,
                committed_at=now,
                metadata=CommitmentMetadata(
                    market_status=market.status.value,
                    market_title=market.title,
                    market_ends_at=market.ends_at,
                    odds_snapshot=build_odds_snapshot(market),
                    user_balance_at_commitment=balance.available_tokens,
                    commitment_source=request.client_info.source,
                    ip_address=request.client_info.ip_address,
                    user_agent=request.client_info.user_agent,
                    selected_option_text=target.option.text,
                    market_option_count=len(market.options),
                ),
            )
            tx = record_transaction(
                TransactionType.COMMIT,
                tokens,
                balance,
                after,
                related_id=commitment.id,
                metadata=TransactionMetadata(
                    market_id=market.id,
                    market_title=market.title,
                    position=target.position.value,
                    option_id=target.option.id,
                    odds=odds,
                    potential_winning=commitment.potential_winning,
                    tokens_committed=tokens,
                ),
            )
            ensure_valid_balance(after)
            ensure_valid_commitment(commitment)
            ensure_valid_transaction(tx)

            await self._ledger.save_balance(db, after, balance.version)
            await self._commitments.insert_commitment(db, commitment)
            await self._ledger.append_transaction(db, tx)
            return commitment

        label = f"commit:{request.user_id}:{request.market_id}"
        try:
            commitment = await run_with_retry(
                db, _attempt, attempts=settings.COMMIT_MAX_RETRIES, label=label
            )
        except CommitmentRejectedError as exc:
            return _failure(
                "VALIDATION_FAILED",
                exc.message,
                [IssueSchema(**d) for d in exc.details],
            )
        except InsufficientBalanceError as exc:
            return _failure("VALIDATION_FAILED", exc.message)
        except ConcurrentModificationError as exc:
            return _failure(
                "CONCURRENT_MODIFICATION",
                f"Balance kept changing, gave up after {settings.COMMIT_MAX_RETRIES} attempts",
                [IssueSchema(field="user_id", code="CONCURRENT_MODIFICATION", message=exc.message)],
                retryable=True,
            )
        except (AppError, SQLAlchemyError) as exc:
            logger.exception("Commitment creation failed: %s", label)
            return _failure("CREATION_FAILED", str(exc), retryable=isinstance(exc, SQLAlchemyError))

        logger.info(
            "Commitment created: id=%s user=%s market=%s option=%s tokens=%d odds=%.2f",
            commitment.id, commitment.user_id, commitment.market_id,
            commitment.option_id, commitment.tokens_committed, commitment.odds,
        )
        return CommitmentCreationResult(
            success=True,
            commitment_id=commitment.id,
            commitment=CommitmentResponse.from_domain(commitment),
            warnings=_issues(warnings),
        )

    async def create_binary_commitment(
        self,
        db: AsyncSession,
        user_id: str,
        market_id: str,
        position: Position,
        tokens_to_commit: int | float,
        client_info: ClientInfo | None = None,
    ) -> CommitmentCreationResult:
        return await self.create_commitment(
            db,
            CommitmentRequest(
                user_id=user_id,
                market_id=market_id,
                tokens_to_commit=tokens_to_commit,
                position=position,
                client_info=client_info or ClientInfo(),
            ),
        )

    async def create_multi_option_commitment(
        self,
        db: AsyncSession,
        user_id: str,
        market_id: str,
        option_id: str,
        tokens_to_commit: int | float,
        client_info: ClientInfo | None = None,
    ) -> CommitmentCreationResult:
        return await self.create_commitment(
            db,
            CommitmentRequest(
                user_id=user_id,
                market_id=market_id,
                tokens_to_commit=tokens_to_commit,
                option_id=option_id,
                client_info=client_info or ClientInfo(),
            ),
        )
