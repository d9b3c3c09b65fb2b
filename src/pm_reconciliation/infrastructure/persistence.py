"""AuditLogRepository: balance_audit_log, one row per reconciliation overwrite."""

import json
from dataclasses import asdict
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_common.datetime_utils import parse_iso
from src.pm_common.errors import InternalError
from src.pm_ledger.domain.models import UserBalance
from src.pm_reconciliation.domain.models import BalanceAuditEntry

_INSERT_SQL = text("""
    INSERT INTO balance_audit_log (id, user_id, previous, corrected, reason, created_at)
    VALUES (:id, :user_id, CAST(:previous AS JSONB), CAST(:corrected AS JSONB),
            :reason, :created_at)
""")

_LIST_SQL = text("""
    SELECT id, user_id, previous, corrected, reason, created_at
    FROM balance_audit_log
    WHERE user_id = :user_id
    ORDER BY created_at DESC
    LIMIT :limit
""")


def _balance_to_json(balance: UserBalance | None) -> str | None:
    if balance is None:
        return None
    data = asdict(balance)
    data["last_updated"] = balance.last_updated.isoformat()
    return json.dumps(data)


def _balance_from_json(raw: Any) -> UserBalance | None:
    if raw is None:
        return None
    data = json.loads(raw) if isinstance(raw, str) else dict(raw)
    data["last_updated"] = parse_iso(data["last_updated"])
    return UserBalance(**data)


class AuditLogRepository:
    async def append_entry(self, db: AsyncSession, entry: BalanceAuditEntry) -> None:
        await db.execute(
            _INSERT_SQL,
            {
                "id": entry.id,
                "user_id": entry.user_id,
                "previous": _balance_to_json(entry.previous),
                "corrected": _balance_to_json(entry.corrected),
                "reason": entry.reason,
                "created_at": entry.created_at,
            },
        )

    async def list_entries(
        self, db: AsyncSession, user_id: str, limit: int
    ) -> list[BalanceAuditEntry]:
        result = await db.execute(_LIST_SQL, {"user_id": user_id, "limit": limit})
        entries = []
        for row in result.fetchall():
            corrected = _balance_from_json(row.corrected)
            if corrected is None:
                raise InternalError(f"Audit entry {row.id} has no corrected balance")
            entries.append(
                BalanceAuditEntry(
                    id=row.id,
                    user_id=row.user_id,
                    previous=_balance_from_json(row.previous),
                    corrected=corrected,
                    reason=row.reason,
                    created_at=row.created_at,
                )
            )
        return entries
