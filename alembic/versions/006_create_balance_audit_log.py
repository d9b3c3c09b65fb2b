"""006: create balance_audit_log table

Revision ID: 006
Revises: 005
Create Date: 2026-10-16
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE balance_audit_log (
            id              VARCHAR(64)     PRIMARY KEY,
            user_id         VARCHAR(128)    NOT NULL,
            previous        JSONB,
            corrected       JSONB           NOT NULL,
            reason          TEXT            NOT NULL,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute("""
        CREATE INDEX idx_balance_audit_log_user_created
            ON balance_audit_log (user_id, created_at DESC);
    """)
    op.execute("""
        CREATE TRIGGER trg_balance_audit_log_append_only
            BEFORE UPDATE OR DELETE ON balance_audit_log
            FOR EACH ROW EXECUTE FUNCTION fn_reject_mutation();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS balance_audit_log;")
