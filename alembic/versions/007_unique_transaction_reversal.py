"""007: at most one compensating row per ledger transaction

Revision ID: 007
Revises: 006
Create Date: 2026-10-16
"""
from typing import Sequence, Union
from alembic import op

revision: str = "007"
down_revision: Union[str, None] = "006"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE UNIQUE INDEX uq_token_transactions_reverses
            ON token_transactions ((metadata->>'reverses_transaction_id'))
            WHERE metadata ? 'reverses_transaction_id';
    """)


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS uq_token_transactions_reverses;")
