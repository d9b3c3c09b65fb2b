"""In-process ledger store with compare-and-swap commits.

Stands in for PostgreSQL in tests and single-process runs. Implements the
ledger, commitment, market and audit-log repository protocols over plain
dicts. Writes are staged on an InMemorySession and applied at commit():
under one asyncio.Lock every expected balance version and commitment
status is re-checked, and either all staged writes apply or none do.

Reads yield to the event loop once, like a network round-trip would, so
concurrent tasks interleave between read and commit.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from src.pm_commitment.domain.models import PredictionCommitment
from src.pm_common.enums import CommitmentStatus, TransactionStatus
from src.pm_common.errors import ConcurrentModificationError, InternalError
from src.pm_ledger.domain.models import TokenTransaction, UserBalance
from src.pm_market.domain.models import Market
from src.pm_reconciliation.domain.models import BalanceAuditEntry

logger = logging.getLogger(__name__)


@dataclass
class _StagedBalance:
    balance: UserBalance
    expected_version: int | None


@dataclass
class _StagedStatus:
    commitment_id: str
    expected_status: CommitmentStatus
    new_status: CommitmentStatus
    resolved_at: datetime | None


@dataclass
class InMemorySession:
    """Duck-types the commit/rollback surface of AsyncSession."""

    store: "InMemoryLedgerStore"
    balances: list[_StagedBalance] = field(default_factory=list)
    transactions: list[TokenTransaction] = field(default_factory=list)
    commitments: list[PredictionCommitment] = field(default_factory=list)
    statuses: list[_StagedStatus] = field(default_factory=list)
    audit_entries: list[BalanceAuditEntry] = field(default_factory=list)

    async def commit(self) -> None:
        try:
            await self.store.apply(self)
        finally:
            self.clear()

    async def rollback(self) -> None:
        self.clear()

    async def close(self) -> None:
        self.clear()

    def clear(self) -> None:
        self.balances.clear()
        self.transactions.clear()
        self.commitments.clear()
        self.statuses.clear()
        self.audit_entries.clear()


class InMemoryLedgerStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.balances: dict[str, UserBalance] = {}
        self.transactions: list[TokenTransaction] = []
        self.commitments: dict[str, PredictionCommitment] = {}
        self.markets: dict[str, Market] = {}
        self.audit_log: list[BalanceAuditEntry] = []

    def session(self) -> InMemorySession:
        return InMemorySession(store=self)

    def add_market(self, market: Market) -> None:
        self.markets[market.id] = market

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    async def apply(self, session: InMemorySession) -> None:
        async with self._lock:
            self._check_expectations(session)
            for staged in session.balances:
                self.balances[staged.balance.user_id] = staged.balance
            for commitment in session.commitments:
                self.commitments[commitment.id] = commitment
            for change in session.statuses:
                current = self.commitments[change.commitment_id]
                self.commitments[change.commitment_id] = replace(
                    current, status=change.new_status, resolved_at=change.resolved_at
                )
            self.transactions.extend(session.transactions)
            self.audit_log.extend(session.audit_entries)
            logger.debug(
                "Applied %d balance writes, %d transactions, %d commitments",
                len(session.balances),
                len(session.transactions),
                len(session.commitments),
            )

    def _check_expectations(self, session: InMemorySession) -> None:
        for staged in session.balances:
            user_id = staged.balance.user_id
            current = self.balances.get(user_id)
            if staged.expected_version is None:
                if current is not None:
                    raise ConcurrentModificationError(f"Balance for user {user_id}", "no row")
            elif current is None or current.version != staged.expected_version:
                raise ConcurrentModificationError(
                    f"Balance for user {user_id}", f"version {staged.expected_version}"
                )
        for change in session.statuses:
            current_c = self.commitments.get(change.commitment_id)
            if current_c is None or current_c.status != change.expected_status:
                raise ConcurrentModificationError(
                    f"Commitment {change.commitment_id}",
                    f"status {change.expected_status.value}",
                )

    # ------------------------------------------------------------------
    # LedgerRepositoryProtocol
    # ------------------------------------------------------------------

    async def get_balance(self, db: Any, user_id: str) -> UserBalance | None:
        await asyncio.sleep(0)
        return self.balances.get(user_id)

    async def save_balance(
        self, db: InMemorySession, balance: UserBalance, expected_version: int | None
    ) -> UserBalance:
        db.balances.append(_StagedBalance(balance, expected_version))
        return balance

    async def append_transaction(
        self, db: InMemorySession, tx: TokenTransaction
    ) -> TokenTransaction:
        if any(t.id == tx.id for t in self.transactions):
            raise InternalError(f"Duplicate transaction id {tx.id}")
        db.transactions.append(tx)
        return tx

    async def get_transaction(self, db: Any, transaction_id: str) -> TokenTransaction | None:
        await asyncio.sleep(0)
        return next((t for t in self.transactions if t.id == transaction_id), None)

    async def find_reversal(self, db: Any, transaction_id: str) -> TokenTransaction | None:
        await asyncio.sleep(0)
        return next(
            (t for t in self.transactions
             if t.metadata.reverses_transaction_id == transaction_id),
            None,
        )

    async def list_transactions(
        self,
        db: Any,
        user_id: str,
        limit: int,
        before: tuple[datetime, str] | None = None,
        tx_type: str | None = None,
    ) -> list[TokenTransaction]:
        await asyncio.sleep(0)
        rows = [
            t for t in self.transactions
            if t.user_id == user_id
            and (before is None or (t.timestamp, t.id) < before)
            and (tx_type is None or t.type.value == tx_type)
        ]
        rows.sort(key=lambda t: (t.timestamp, t.id), reverse=True)
        return rows[:limit]

    async def list_completed_transactions(
        self, db: Any, user_id: str
    ) -> list[TokenTransaction]:
        await asyncio.sleep(0)
        rows = [
            t for t in self.transactions
            if t.user_id == user_id and t.status == TransactionStatus.COMPLETED
        ]
        rows.sort(key=lambda t: (t.timestamp, t.id))
        return rows

    async def list_user_ids(self, db: Any, limit: int | None = None) -> list[str]:
        await asyncio.sleep(0)
        user_ids = sorted(self.balances)
        return user_ids if limit is None else user_ids[:limit]

    # ------------------------------------------------------------------
    # CommitmentRepositoryProtocol
    # ------------------------------------------------------------------

    async def get_commitment(self, db: Any, commitment_id: str) -> PredictionCommitment | None:
        await asyncio.sleep(0)
        return self.commitments.get(commitment_id)

    async def insert_commitment(
        self, db: InMemorySession, commitment: PredictionCommitment
    ) -> PredictionCommitment:
        db.commitments.append(commitment)
        return commitment

    async def update_commitment_status(
        self,
        db: InMemorySession,
        commitment_id: str,
        expected_status: CommitmentStatus,
        new_status: CommitmentStatus,
        resolved_at: datetime | None,
    ) -> PredictionCommitment:
        current = self.commitments.get(commitment_id)
        if current is None or current.status != expected_status:
            raise ConcurrentModificationError(
                f"Commitment {commitment_id}", f"status {expected_status.value}"
            )
        db.statuses.append(_StagedStatus(commitment_id, expected_status, new_status, resolved_at))
        return replace(current, status=new_status, resolved_at=resolved_at)

    async def list_active_commitments(
        self, db: Any, user_id: str
    ) -> list[PredictionCommitment]:
        await asyncio.sleep(0)
        rows = [c for c in self.commitments.values() if c.user_id == user_id and c.is_active]
        rows.sort(key=lambda c: (c.committed_at, c.id))
        return rows

    async def list_active_commitments_for_market(
        self, db: Any, market_id: str
    ) -> list[PredictionCommitment]:
        await asyncio.sleep(0)
        rows = [
            c for c in self.commitments.values() if c.market_id == market_id and c.is_active
        ]
        rows.sort(key=lambda c: (c.committed_at, c.id))
        return rows

    async def find_active_commitment(
        self, db: Any, user_id: str, market_id: str
    ) -> PredictionCommitment | None:
        await asyncio.sleep(0)
        for c in self.commitments.values():
            if c.user_id == user_id and c.market_id == market_id and c.is_active:
                return c
        return None

    # ------------------------------------------------------------------
    # MarketRepositoryProtocol (read-only)
    # ------------------------------------------------------------------

    async def get_market_by_id(self, db: Any, market_id: str) -> Market | None:
        await asyncio.sleep(0)
        return self.markets.get(market_id)

    # ------------------------------------------------------------------
    # AuditLogRepositoryProtocol
    # ------------------------------------------------------------------

    async def append_entry(self, db: InMemorySession, entry: BalanceAuditEntry) -> None:
        db.audit_entries.append(entry)

    async def list_entries(self, db: Any, user_id: str, limit: int) -> list[BalanceAuditEntry]:
        await asyncio.sleep(0)
        rows = [e for e in self.audit_log if e.user_id == user_id]
        rows.sort(key=lambda e: e.created_at, reverse=True)
        return rows[:limit]
