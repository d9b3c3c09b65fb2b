"""LedgerRepository: concrete implementation of LedgerRepositoryProtocol.

Balance writes are compare-and-swap on `version`: the UPDATE only matches the
row the caller read. Zero rows returned means another writer got there
first and ConcurrentModificationError is raised for the service to retry.

Transaction ownership: the CALLER (application service) commits or rolls back.
"""

import json
from dataclasses import asdict, fields
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_common.enums import TransactionStatus, TransactionType
from src.pm_common.errors import ConcurrentModificationError, InternalError
from src.pm_ledger.domain.models import TokenTransaction, TransactionMetadata, UserBalance

# ---------------------------------------------------------------------------
# SQL: user_balances
# ---------------------------------------------------------------------------

_BALANCE_COLUMNS = """
    user_id, available_tokens, committed_tokens, total_earned, total_spent,
    version, last_updated
"""

_GET_BALANCE_SQL = text(f"""
    SELECT {_BALANCE_COLUMNS}
    FROM user_balances
    WHERE user_id = :user_id
""")

_INSERT_BALANCE_SQL = text(f"""
    INSERT INTO user_balances
        (user_id, available_tokens, committed_tokens, total_earned, total_spent,
         version, last_updated)
    VALUES
        (:user_id, :available_tokens, :committed_tokens, :total_earned, :total_spent,
         :version, :last_updated)
    ON CONFLICT (user_id) DO NOTHING
    RETURNING {_BALANCE_COLUMNS}
""")

_UPDATE_BALANCE_SQL = text(f"""
    UPDATE user_balances
    SET available_tokens = :available_tokens,
        committed_tokens = :committed_tokens,
        total_earned     = :total_earned,
        total_spent      = :total_spent,
        version          = :version,
        last_updated     = :last_updated
    WHERE user_id = :user_id AND version = :expected_version
    RETURNING {_BALANCE_COLUMNS}
""")

_LIST_USER_IDS_SQL = text("""
    SELECT user_id
    FROM user_balances
    ORDER BY user_id
    LIMIT :limit
""")

# ---------------------------------------------------------------------------
# SQL: token_transactions (append-only)
# ---------------------------------------------------------------------------

_TX_COLUMNS = """
    id, user_id, type, amount, balance_before, balance_after,
    related_id, metadata, status, created_at
"""

_INSERT_TX_SQL = text(f"""
    INSERT INTO token_transactions
        (id, user_id, type, amount, balance_before, balance_after,
         related_id, metadata, status, created_at)
    VALUES
        (:id, :user_id, :type, :amount, :balance_before, :balance_after,
         :related_id, CAST(:metadata AS JSONB), :status, :created_at)
    RETURNING {_TX_COLUMNS}
""")

_GET_TX_SQL = text(f"""
    SELECT {_TX_COLUMNS}
    FROM token_transactions
    WHERE id = :id
""")

_FIND_REVERSAL_SQL = text(f"""
    SELECT {_TX_COLUMNS}
    FROM token_transactions
    WHERE metadata->>'reverses_transaction_id' = :id
    LIMIT 1
""")

_LIST_TX_SQL = text(f"""
    SELECT {_TX_COLUMNS}
    FROM token_transactions
    WHERE user_id = :user_id
      AND (CAST(:before_ts AS TIMESTAMPTZ) IS NULL
           OR (created_at, id) < (CAST(:before_ts AS TIMESTAMPTZ), CAST(:before_id AS TEXT)))
      AND (CAST(:tx_type AS TEXT) IS NULL OR type = CAST(:tx_type AS TEXT))
    ORDER BY created_at DESC, id DESC
    LIMIT :limit
""")

_LIST_COMPLETED_TX_SQL = text(f"""
    SELECT {_TX_COLUMNS}
    FROM token_transactions
    WHERE user_id = :user_id AND status = 'completed'
    ORDER BY created_at ASC, id ASC
""")

# ---------------------------------------------------------------------------
# Mappers
# ---------------------------------------------------------------------------

_METADATA_FIELDS = {f.name for f in fields(TransactionMetadata)} - {"extra"}


def metadata_to_json(metadata: TransactionMetadata) -> str:
    data = {k: v for k, v in asdict(metadata).items() if k != "extra" and v is not None}
    if metadata.extra:
        data["extra"] = metadata.extra
    return json.dumps(data)


def metadata_from_json(raw: Any) -> TransactionMetadata:
    if raw is None:
        return TransactionMetadata()
    data = json.loads(raw) if isinstance(raw, str) else dict(raw)
    extra = dict(data.pop("extra", None) or {})
    known = {k: v for k, v in data.items() if k in _METADATA_FIELDS}
    extra.update({k: v for k, v in data.items() if k not in _METADATA_FIELDS})
    return TransactionMetadata(**known, extra=extra)


def _row_to_balance(row: object) -> UserBalance:
    return UserBalance(
        user_id=row.user_id,  # type: ignore[attr-defined]
        available_tokens=float(row.available_tokens),  # type: ignore[attr-defined]
        committed_tokens=float(row.committed_tokens),  # type: ignore[attr-defined]
        total_earned=float(row.total_earned),  # type: ignore[attr-defined]
        total_spent=float(row.total_spent),  # type: ignore[attr-defined]
        version=int(row.version),  # type: ignore[attr-defined]
        last_updated=row.last_updated,  # type: ignore[attr-defined]
    )


def _row_to_transaction(row: object) -> TokenTransaction:
    return TokenTransaction(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        type=TransactionType(row.type),  # type: ignore[attr-defined]
        amount=float(row.amount),  # type: ignore[attr-defined]
        balance_before=float(row.balance_before),  # type: ignore[attr-defined]
        balance_after=float(row.balance_after),  # type: ignore[attr-defined]
        related_id=row.related_id,  # type: ignore[attr-defined]
        metadata=metadata_from_json(row.metadata),  # type: ignore[attr-defined]
        status=TransactionStatus(row.status),  # type: ignore[attr-defined]
        timestamp=row.created_at,  # type: ignore[attr-defined]
    )


def _balance_params(balance: UserBalance) -> dict[str, Any]:
    return {
        "user_id": balance.user_id,
        "available_tokens": balance.available_tokens,
        "committed_tokens": balance.committed_tokens,
        "total_earned": balance.total_earned,
        "total_spent": balance.total_spent,
        "version": balance.version,
        "last_updated": balance.last_updated,
    }


class LedgerRepository:
    """Concrete repository: every balance write is version-guarded at the SQL level."""

    async def get_balance(self, db: AsyncSession, user_id: str) -> UserBalance | None:
        result = await db.execute(_GET_BALANCE_SQL, {"user_id": user_id})
        row = result.fetchone()
        return _row_to_balance(row) if row else None

    async def save_balance(
        self, db: AsyncSession, balance: UserBalance, expected_version: int | None
    ) -> UserBalance:
        params = _balance_params(balance)
        if expected_version is None:
            result = await db.execute(_INSERT_BALANCE_SQL, params)
        else:
            result = await db.execute(
                _UPDATE_BALANCE_SQL, {**params, "expected_version": expected_version}
            )
        row = result.fetchone()
        if row is None:
            raise ConcurrentModificationError(
                f"Balance for user {balance.user_id}",
                "no row" if expected_version is None else f"version {expected_version}",
            )
        return _row_to_balance(row)

    async def append_transaction(
        self, db: AsyncSession, tx: TokenTransaction
    ) -> TokenTransaction:
        result = await db.execute(
            _INSERT_TX_SQL,
            {
                "id": tx.id,
                "user_id": tx.user_id,
                "type": tx.type.value,
                "amount": tx.amount,
                "balance_before": tx.balance_before,
                "balance_after": tx.balance_after,
                "related_id": tx.related_id,
                "metadata": metadata_to_json(tx.metadata),
                "status": tx.status.value,
                "created_at": tx.timestamp,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Transaction insert returned no rows")
        return _row_to_transaction(row)

    async def get_transaction(
        self, db: AsyncSession, transaction_id: str
    ) -> TokenTransaction | None:
        result = await db.execute(_GET_TX_SQL, {"id": transaction_id})
        row = result.fetchone()
        return _row_to_transaction(row) if row else None

    async def find_reversal(
        self, db: AsyncSession, transaction_id: str
    ) -> TokenTransaction | None:
        result = await db.execute(_FIND_REVERSAL_SQL, {"id": transaction_id})
        row = result.fetchone()
        return _row_to_transaction(row) if row else None

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        limit: int,
        before: tuple[datetime, str] | None = None,
        tx_type: str | None = None,
    ) -> list[TokenTransaction]:
        result = await db.execute(
            _LIST_TX_SQL,
            {
                "user_id": user_id,
                "before_ts": before[0] if before else None,
                "before_id": before[1] if before else None,
                "tx_type": tx_type,
                "limit": limit,
            },
        )
        return [_row_to_transaction(row) for row in result.fetchall()]

    async def list_completed_transactions(
        self, db: AsyncSession, user_id: str
    ) -> list[TokenTransaction]:
        result = await db.execute(_LIST_COMPLETED_TX_SQL, {"user_id": user_id})
        return [_row_to_transaction(row) for row in result.fetchall()]

    async def list_user_ids(self, db: AsyncSession, limit: int | None = None) -> list[str]:
        result = await db.execute(_LIST_USER_IDS_SQL, {"limit": limit})
        return [row.user_id for row in result.fetchall()]
