"""Commitment validation: collects every problem instead of stopping at the first.

`evaluate` is pure and is reused inside the creation transaction against the
freshly read market and balance; `CommitmentValidationService.validate`
performs the lookups itself and is side-effect free.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pm_commitment.domain.models import CommitmentRequest
from src.pm_commitment.domain.option_mapping import ResolvedTarget, resolve_target
from src.pm_commitment.domain.repository import CommitmentRepositoryProtocol
from src.pm_commitment.infrastructure.persistence import CommitmentRepository
from src.pm_common.datetime_utils import ensure_utc, utc_now
from src.pm_common.enums import MarketStatus
from src.pm_common.errors import (
    InvalidCommitmentAmountError,
    MarketClosedError,
    MarketNotFoundError,
)
from src.pm_common.validation import ValidationResult
from src.pm_ledger.domain.balance_math import has_sufficient_balance
from src.pm_ledger.domain.models import UserBalance
from src.pm_ledger.domain.repository import LedgerRepositoryProtocol
from src.pm_ledger.infrastructure.persistence import LedgerRepository
from src.pm_market.domain.models import Market
from src.pm_market.domain.repository import MarketRepositoryProtocol
from src.pm_market.infrastructure.persistence import MarketRepository

logger = logging.getLogger(__name__)


@dataclass
class CommitmentEvaluation:
    result: ValidationResult
    target: ResolvedTarget | None = None
    tokens: int | None = None


# ---------------------------------------------------------------------------
# Rules: each raises its typed AppError; the check_* collectors record it
# ---------------------------------------------------------------------------


def require_whole_amount(value: object) -> int:
    """Whole tokens within [MIN_COMMITMENT_TOKENS, MAX_COMMITMENT_TOKENS]."""
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or (isinstance(value, float) and not value.is_integer())
    ):
        raise InvalidCommitmentAmountError("must be a positive whole number")
    tokens = int(value)
    if tokens < settings.MIN_COMMITMENT_TOKENS:
        raise InvalidCommitmentAmountError(
            f"minimum is {settings.MIN_COMMITMENT_TOKENS} token(s)"
        )
    if tokens > settings.MAX_COMMITMENT_TOKENS:
        raise InvalidCommitmentAmountError(
            f"maximum is {settings.MAX_COMMITMENT_TOKENS} tokens"
        )
    return tokens


def require_market(market_id: str, market: Market | None) -> Market:
    if market is None:
        raise MarketNotFoundError(market_id)
    return market


def ensure_market_active(market: Market) -> None:
    if market.status != MarketStatus.ACTIVE:
        raise MarketClosedError(market.id, f"status is {market.status.value}")


def ensure_market_open(market: Market, now: datetime) -> None:
    if market.ends_at is not None and ensure_utc(market.ends_at) <= now:
        raise MarketClosedError(market.id, "end date has passed")


def check_amount(value: object, result: ValidationResult) -> int | None:
    """Returns the amount as int when valid."""
    try:
        return require_whole_amount(value)
    except InvalidCommitmentAmountError as exc:
        result.error("tokens_to_commit", "INVALID_AMOUNT", exc.message)
        return None


def check_market(
    market_id: str, market: Market | None, now: datetime, result: ValidationResult
) -> Market | None:
    """Returns the market when there is one to check options against."""
    if not market_id:
        result.error("market_id", "MARKET_REQUIRED", "Market ID is required")
        return None
    try:
        found = require_market(market_id, market)
    except MarketNotFoundError as exc:
        result.error("market_id", "MARKET_NOT_FOUND", exc.message)
        return None
    # Both closure reasons are reported
    try:
        ensure_market_active(found)
    except MarketClosedError as exc:
        result.error("market_id", "MARKET_CLOSED", exc.message)
    try:
        ensure_market_open(found, now)
    except MarketClosedError as exc:
        result.error("market_id", "MARKET_CLOSED", exc.message)
    return found


def evaluate(
    request: CommitmentRequest,
    market: Market | None,
    balance: UserBalance | None,
    now: datetime | None = None,
) -> CommitmentEvaluation:
    result = ValidationResult()
    now = now or utc_now()

    if not request.user_id or not request.user_id.strip():
        result.error("user_id", "INVALID_USER", "User ID is required")

    target = None
    found = check_market(request.market_id, market, now, result)
    if found is not None:
        target = resolve_target(found, request.option_id, request.position, result)

    tokens = check_amount(request.tokens_to_commit, result)
    if tokens is not None and not has_sufficient_balance(balance, tokens):
        available = balance.available_tokens if balance is not None else 0
        result.error(
            "tokens_to_commit",
            "INSUFFICIENT_BALANCE",
            f"Insufficient balance. Available: {available:g}, Required: {tokens}",
        )

    return CommitmentEvaluation(result=result, target=target, tokens=tokens)


class CommitmentValidationService:
    def __init__(
        self,
        market_repo: MarketRepositoryProtocol | None = None,
        ledger_repo: LedgerRepositoryProtocol | None = None,
        commitment_repo: CommitmentRepositoryProtocol | None = None,
    ) -> None:
        self._markets: MarketRepositoryProtocol = market_repo or MarketRepository()
        self._ledger: LedgerRepositoryProtocol = ledger_repo or LedgerRepository()
        self._commitments: CommitmentRepositoryProtocol = (
            commitment_repo or CommitmentRepository()
        )

    async def validate(self, db: AsyncSession, request: CommitmentRequest) -> ValidationResult:
        has_user = bool(request.user_id and request.user_id.strip())
        market = (
            await self._markets.get_market_by_id(db, request.market_id)
            if request.market_id else None
        )
        balance = await self._ledger.get_balance(db, request.user_id) if has_user else None

        evaluation = evaluate(request, market, balance)
        result = evaluation.result

        if has_user and market is not None:
            existing = await self._commitments.find_active_commitment(
                db, request.user_id, market.id
            )
            if existing is not None:
                result.warn(
                    "market_id",
                    "EXISTING_COMMITMENT",
                    f"You already have an active commitment on this market "
                    f"({existing.tokens_committed} tokens on '{existing.position.value}')",
                )

        if not result.is_valid:
            logger.info(
                "Commitment request rejected: user=%s market=%s codes=%s",
                request.user_id, request.market_id, result.error_codes(),
            )
        return result
