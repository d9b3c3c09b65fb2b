"""CommitmentRepository: prediction_commitments via raw text() SQL.

Status transitions are guarded on the current status so two settlements of
the same commitment cannot both apply.
"""

import json
from dataclasses import asdict, fields
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_commitment.domain.models import (
    CommitmentMetadata,
    OddsSnapshot,
    PredictionCommitment,
)
from src.pm_common.datetime_utils import parse_iso
from src.pm_common.enums import CommitmentSource, CommitmentStatus, Position
from src.pm_common.errors import ConcurrentModificationError, InternalError

_COLUMNS = """
    id, user_id, market_id, option_id, position, tokens_committed, odds,
    potential_winning, status, committed_at, resolved_at, metadata
"""

_GET_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM prediction_commitments
    WHERE id = :id
""")

_INSERT_SQL = text(f"""
    INSERT INTO prediction_commitments
        (id, user_id, market_id, option_id, position, tokens_committed, odds,
         potential_winning, status, committed_at, resolved_at, metadata)
    VALUES
        (:id, :user_id, :market_id, :option_id, :position, :tokens_committed, :odds,
         :potential_winning, :status, :committed_at, :resolved_at, CAST(:metadata AS JSONB))
    RETURNING {_COLUMNS}
""")

_UPDATE_STATUS_SQL = text(f"""
    UPDATE prediction_commitments
    SET status = :new_status,
        resolved_at = :resolved_at
    WHERE id = :id AND status = :expected_status
    RETURNING {_COLUMNS}
""")

_LIST_ACTIVE_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM prediction_commitments
    WHERE user_id = :user_id AND status = 'active'
    ORDER BY committed_at ASC, id ASC
""")

_LIST_ACTIVE_FOR_MARKET_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM prediction_commitments
    WHERE market_id = :market_id AND status = 'active'
    ORDER BY committed_at ASC, id ASC
""")

_FIND_ACTIVE_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM prediction_commitments
    WHERE user_id = :user_id AND market_id = :market_id AND status = 'active'
    ORDER BY committed_at DESC
    LIMIT 1
""")

_METADATA_FIELDS = {f.name for f in fields(CommitmentMetadata)} - {"extra", "odds_snapshot"}


def metadata_to_json(metadata: CommitmentMetadata) -> str:
    data = asdict(metadata)
    data["market_ends_at"] = (
        metadata.market_ends_at.isoformat() if metadata.market_ends_at else None
    )
    data["commitment_source"] = metadata.commitment_source.value
    data["odds_snapshot"] = {
        k: v for k, v in data["odds_snapshot"].items() if v is not None
    }
    return json.dumps(data)


def metadata_from_json(raw: Any) -> CommitmentMetadata:
    data = json.loads(raw) if isinstance(raw, str) else dict(raw)
    snapshot = OddsSnapshot(**data.pop("odds_snapshot"))
    extra = dict(data.pop("extra", None) or {})
    known = {k: v for k, v in data.items() if k in _METADATA_FIELDS}
    extra.update({k: v for k, v in data.items() if k not in _METADATA_FIELDS})
    known["market_ends_at"] = parse_iso(known.get("market_ends_at"))
    known["commitment_source"] = CommitmentSource(known.get("commitment_source", "web"))
    return CommitmentMetadata(odds_snapshot=snapshot, extra=extra, **known)


def _row_to_commitment(row: object) -> PredictionCommitment:
    return PredictionCommitment(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        market_id=row.market_id,  # type: ignore[attr-defined]
        option_id=row.option_id,  # type: ignore[attr-defined]
        position=Position(row.position),  # type: ignore[attr-defined]
        tokens_committed=int(row.tokens_committed),  # type: ignore[attr-defined]
        odds=float(row.odds),  # type: ignore[attr-defined]
        potential_winning=int(row.potential_winning),  # type: ignore[attr-defined]
        status=CommitmentStatus(row.status),  # type: ignore[attr-defined]
        committed_at=row.committed_at,  # type: ignore[attr-defined]
        resolved_at=row.resolved_at,  # type: ignore[attr-defined]
        metadata=metadata_from_json(row.metadata),  # type: ignore[attr-defined]
    )


class CommitmentRepository:
    async def get_commitment(
        self, db: AsyncSession, commitment_id: str
    ) -> PredictionCommitment | None:
        result = await db.execute(_GET_SQL, {"id": commitment_id})
        row = result.fetchone()
        return _row_to_commitment(row) if row else None

    async def insert_commitment(
        self, db: AsyncSession, commitment: PredictionCommitment
    ) -> PredictionCommitment:
        result = await db.execute(
            _INSERT_SQL,
            {
                "id": commitment.id,
                "user_id": commitment.user_id,
                "market_id": commitment.market_id,
                "option_id": commitment.option_id,
                "position": commitment.position.value,
                "tokens_committed": commitment.tokens_committed,
                "odds": commitment.odds,
                "potential_winning": commitment.potential_winning,
                "status": commitment.status.value,
                "committed_at": commitment.committed_at,
                "resolved_at": commitment.resolved_at,
                "metadata": metadata_to_json(commitment.metadata),
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Commitment insert returned no rows")
        return _row_to_commitment(row)

    async def update_commitment_status(
        self,
        db: AsyncSession,
        commitment_id: str,
        expected_status: CommitmentStatus,
        new_status: CommitmentStatus,
        resolved_at: datetime | None,
    ) -> PredictionCommitment:
        result = await db.execute(
            _UPDATE_STATUS_SQL,
            {
                "id": commitment_id,
                "expected_status": expected_status.value,
                "new_status": new_status.value,
                "resolved_at": resolved_at,
            },
        )
        row = result.fetchone()
        if row is None:
            raise ConcurrentModificationError(
                f"Commitment {commitment_id}", f"status {expected_status.value}"
            )
        return _row_to_commitment(row)

    async def list_active_commitments(
        self, db: AsyncSession, user_id: str
    ) -> list[PredictionCommitment]:
        result = await db.execute(_LIST_ACTIVE_SQL, {"user_id": user_id})
        return [_row_to_commitment(row) for row in result.fetchall()]

    async def list_active_commitments_for_market(
        self, db: AsyncSession, market_id: str
    ) -> list[PredictionCommitment]:
        result = await db.execute(_LIST_ACTIVE_FOR_MARKET_SQL, {"market_id": market_id})
        return [_row_to_commitment(row) for row in result.fetchall()]

    async def find_active_commitment(
        self, db: AsyncSession, user_id: str, market_id: str
    ) -> PredictionCommitment | None:
        result = await db.execute(_FIND_ACTIVE_SQL, {"user_id": user_id, "market_id": market_id})
        row = result.fetchone()
        return _row_to_commitment(row) if row else None
