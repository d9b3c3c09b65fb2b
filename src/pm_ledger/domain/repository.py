"""Repository Protocol: dependency inversion for testability.

Unit tests inject a mock or the in-memory store; the infrastructure layer
provides the PostgreSQL implementation. Writes join the caller's open
transaction; the application service commits or rolls back.
"""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_ledger.domain.models import TokenTransaction, UserBalance


class LedgerRepositoryProtocol(Protocol):
    async def get_balance(self, db: AsyncSession, user_id: str) -> UserBalance | None: ...

    async def save_balance(
        self, db: AsyncSession, balance: UserBalance, expected_version: int | None
    ) -> UserBalance:
        """Compare-and-swap on version.

        expected_version=None inserts a new row. Raises
        ConcurrentModificationError when the stored version differs (or the
        row already exists on insert).
        """
        ...

    async def append_transaction(
        self, db: AsyncSession, tx: TokenTransaction
    ) -> TokenTransaction: ...

    async def get_transaction(
        self, db: AsyncSession, transaction_id: str
    ) -> TokenTransaction | None: ...

    async def find_reversal(
        self, db: AsyncSession, transaction_id: str
    ) -> TokenTransaction | None:
        """The compensating row whose metadata.reverses_transaction_id points here."""
        ...

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        limit: int,
        before: tuple[datetime, str] | None = None,
        tx_type: str | None = None,
    ) -> list[TokenTransaction]:
        """Newest first. `before` is the (timestamp, id) of the last row already seen."""
        ...

    async def list_completed_transactions(
        self, db: AsyncSession, user_id: str
    ) -> list[TokenTransaction]:
        """Oldest first, completed only: the replay order for reconciliation."""
        ...

    async def list_user_ids(self, db: AsyncSession, limit: int | None = None) -> list[str]: ...
