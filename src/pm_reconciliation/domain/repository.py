from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_reconciliation.domain.models import BalanceAuditEntry


class AuditLogRepositoryProtocol(Protocol):
    async def append_entry(self, db: AsyncSession, entry: BalanceAuditEntry) -> None: ...

    async def list_entries(
        self, db: AsyncSession, user_id: str, limit: int
    ) -> list[BalanceAuditEntry]: ...
