"""002: create user_balances table

Revision ID: 002
Revises: 001
Create Date: 2026-10-16
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE user_balances (
            user_id             VARCHAR(128)        PRIMARY KEY,
            available_tokens    DOUBLE PRECISION    NOT NULL DEFAULT 0,
            committed_tokens    DOUBLE PRECISION    NOT NULL DEFAULT 0,
            total_earned        DOUBLE PRECISION    NOT NULL DEFAULT 0,
            total_spent         DOUBLE PRECISION    NOT NULL DEFAULT 0,
            version             BIGINT              NOT NULL DEFAULT 1,
            last_updated        TIMESTAMPTZ         NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_user_balances_available_gte_0  CHECK (available_tokens >= 0),
            CONSTRAINT ck_user_balances_committed_gte_0  CHECK (committed_tokens >= 0),
            CONSTRAINT ck_user_balances_earned_gte_0     CHECK (total_earned >= 0),
            CONSTRAINT ck_user_balances_spent_gte_0      CHECK (total_spent >= 0),
            CONSTRAINT ck_user_balances_version_gte_1    CHECK (version >= 1)
        );
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_balances;")
