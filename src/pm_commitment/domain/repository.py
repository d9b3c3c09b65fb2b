"""Repository Protocol: dependency inversion for testability."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_commitment.domain.models import PredictionCommitment
from src.pm_common.enums import CommitmentStatus


class CommitmentRepositoryProtocol(Protocol):
    async def get_commitment(
        self, db: AsyncSession, commitment_id: str
    ) -> PredictionCommitment | None: ...

    async def insert_commitment(
        self, db: AsyncSession, commitment: PredictionCommitment
    ) -> PredictionCommitment: ...

    async def update_commitment_status(
        self,
        db: AsyncSession,
        commitment_id: str,
        expected_status: CommitmentStatus,
        new_status: CommitmentStatus,
        resolved_at: datetime | None,
    ) -> PredictionCommitment:
        """Guarded on expected_status; raises ConcurrentModificationError on mismatch."""
        ...

    async def list_active_commitments(
        self, db: AsyncSession, user_id: str
    ) -> list[PredictionCommitment]: ...

    async def list_active_commitments_for_market(
        self, db: AsyncSession, market_id: str
    ) -> list[PredictionCommitment]: ...

    async def find_active_commitment(
        self, db: AsyncSession, user_id: str, market_id: str
    ) -> PredictionCommitment | None: ...
