"""003: create token_transactions table (append-only ledger)

Revision ID: 003
Revises: 002
Create Date: 2026-10-16
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE token_transactions (
            id                  VARCHAR(64)         PRIMARY KEY,
            user_id             VARCHAR(128)        NOT NULL,
            type                VARCHAR(16)         NOT NULL,
            amount              DOUBLE PRECISION    NOT NULL,
            balance_before      DOUBLE PRECISION    NOT NULL,
            balance_after       DOUBLE PRECISION    NOT NULL,
            related_id          VARCHAR(64),
            metadata            JSONB               NOT NULL DEFAULT '{}'::jsonb,
            status              VARCHAR(16)         NOT NULL DEFAULT 'completed',
            created_at          TIMESTAMPTZ         NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_token_transactions_amount_gt_0 CHECK (amount > 0),
            CONSTRAINT ck_token_transactions_type CHECK (
                type IN ('purchase', 'commit', 'win', 'loss', 'refund')
            ),
            CONSTRAINT ck_token_transactions_status CHECK (
                status IN ('pending', 'completed', 'failed')
            )
        );
    """)
    op.execute("""
        CREATE INDEX idx_token_transactions_user_created
            ON token_transactions (user_id, created_at DESC, id DESC);
    """)
    op.execute("""
        CREATE INDEX idx_token_transactions_related
            ON token_transactions (related_id) WHERE related_id IS NOT NULL;
    """)
    op.execute("""
        CREATE TRIGGER trg_token_transactions_append_only
            BEFORE UPDATE OR DELETE ON token_transactions
            FOR EACH ROW EXECUTE FUNCTION fn_reject_mutation();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS token_transactions;")
