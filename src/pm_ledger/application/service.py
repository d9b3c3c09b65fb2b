"""TokenLedgerService: balance reads, purchases and the signup bonus.

Every mutation is one read -> balance_math -> version-guarded write cycle,
committed together with its ledger row and retried on conflict.
"""

import logging
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pm_common.enums import TransactionType
from src.pm_common.errors import BalanceNotFoundError, InvalidInputError
from src.pm_common.retry import run_with_retry
from src.pm_common.validation import require_user_id
from src.pm_ledger.application.schemas import (
    BalanceResponse,
    PurchaseResponse,
    TransactionItem,
    TransactionListResponse,
    cursor_decode,
    cursor_encode,
    ensure_valid_balance,
    ensure_valid_transaction,
)
from src.pm_ledger.domain.balance_math import after_grant, after_purchase, empty_balance
from src.pm_ledger.domain.models import SIGNUP_BONUS_REASON, TransactionMetadata, UserBalance
from src.pm_ledger.domain.repository import LedgerRepositoryProtocol
from src.pm_ledger.domain.transactions import record_transaction
from src.pm_ledger.infrastructure.persistence import LedgerRepository

logger = logging.getLogger(__name__)


class TokenLedgerService:
    def __init__(self, repo: LedgerRepositoryProtocol | None = None) -> None:
        self._repo: LedgerRepositoryProtocol = repo or LedgerRepository()

    async def get_balance(self, db: AsyncSession, user_id: str) -> BalanceResponse:
        user_id = require_user_id(user_id)
        balance = await self._repo.get_balance(db, user_id)
        if balance is None:
            raise BalanceNotFoundError(user_id)
        return BalanceResponse.from_domain(balance)

    async def purchase_tokens(
        self,
        db: AsyncSession,
        user_id: str,
        tokens: int,
        amount_spent_usd: float,
        package_id: str | None = None,
        payment_reference: str | None = None,
    ) -> PurchaseResponse:
        """Credit purchased tokens. Creates the balance (version 1) on first purchase."""
        user_id = require_user_id(user_id)
        if isinstance(tokens, bool) or not isinstance(tokens, int) or tokens <= 0:
            raise InvalidInputError(f"tokens must be a positive integer, got {tokens!r}")
        if amount_spent_usd < 0:
            raise InvalidInputError("amount_spent_usd cannot be negative")

        result = await self._credit(
            db,
            user_id,
            tokens,
            lambda b: after_purchase(b, tokens, amount_spent_usd),
            TransactionMetadata(
                payment_reference=payment_reference,
                package_id=package_id,
                amount_spent_usd=amount_spent_usd,
            ),
            related_id=payment_reference,
        )
        logger.info(
            "Purchase credited: user=%s tokens=%d usd=%.2f version=%d",
            user_id, tokens, amount_spent_usd, result.balance.version,
        )
        return result

    async def grant_signup_bonus(self, db: AsyncSession, user_id: str) -> BalanceResponse:
        """One-off starting grant. A user who already has a balance gets it back unchanged."""
        user_id = require_user_id(user_id)
        existing = await self._repo.get_balance(db, user_id)
        if existing is not None:
            return BalanceResponse.from_domain(existing)
        tokens = settings.SIGNUP_BONUS_TOKENS
        result = await self._credit(
            db,
            user_id,
            tokens,
            lambda b: after_grant(b, tokens),
            TransactionMetadata(amount_spent_usd=0.0, reason=SIGNUP_BONUS_REASON),
            only_if_new=True,
        )
        logger.info("Signup bonus granted: user=%s tokens=%d", user_id, tokens)
        return result.balance

    async def _credit(
        self,
        db: AsyncSession,
        user_id: str,
        tokens: int,
        transition: Callable[[UserBalance], UserBalance],
        metadata: TransactionMetadata,
        related_id: str | None = None,
        only_if_new: bool = False,
    ) -> PurchaseResponse:
        async def _attempt() -> PurchaseResponse:
            current = await self._repo.get_balance(db, user_id)
            if only_if_new and current is not None:
                # Lost the race to another first credit; nothing to do
                return PurchaseResponse(
                    balance=BalanceResponse.from_domain(current), transaction=None
                )
            before = current or empty_balance(user_id)
            after = transition(before)
            tx = record_transaction(
                TransactionType.PURCHASE, tokens, before, after,
                related_id=related_id, metadata=metadata,
            )
            ensure_valid_balance(after)
            ensure_valid_transaction(tx)
            saved = await self._repo.save_balance(
                db, after, current.version if current else None
            )
            await self._repo.append_transaction(db, tx)
            return PurchaseResponse(
                balance=BalanceResponse.from_domain(saved),
                transaction=TransactionItem.from_domain(tx),
            )

        return await run_with_retry(
            db, _attempt, attempts=settings.COMMIT_MAX_RETRIES, label=f"credit:{user_id}"
        )

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        cursor: str | None,
        limit: int,
        tx_type: str | None,
    ) -> TransactionListResponse:
        user_id = require_user_id(user_id)
        before = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        rows = await self._repo.list_transactions(db, user_id, limit + 1, before, tx_type)
        has_more = len(rows) > limit
        page = rows[:limit]
        next_cursor = (
            cursor_encode(page[-1].timestamp, page[-1].id) if has_more and page else None
        )
        return TransactionListResponse(
            items=[TransactionItem.from_domain(t) for t in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )
