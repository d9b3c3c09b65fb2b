"""004: create markets and market_options tables

Revision ID: 004
Revises: 003
Create Date: 2026-10-16
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE markets (
            id                  VARCHAR(64)     PRIMARY KEY,
            title               VARCHAR(500)    NOT NULL,
            description         TEXT,
            status              VARCHAR(16)     NOT NULL DEFAULT 'draft',
            ends_at             TIMESTAMPTZ,
            total_participants  INT             NOT NULL DEFAULT 0,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_markets_status CHECK (
                status IN ('draft', 'active', 'closed', 'resolved', 'cancelled')
            ),
            CONSTRAINT ck_markets_participants_gte_0 CHECK (total_participants >= 0)
        );
    """)
    op.execute("""
        CREATE TABLE market_options (
            id                  VARCHAR(64)     NOT NULL,
            market_id           VARCHAR(64)     NOT NULL REFERENCES markets(id) ON DELETE CASCADE,
            text                VARCHAR(200)    NOT NULL,
            sort_order          SMALLINT        NOT NULL DEFAULT 0,
            total_tokens        BIGINT          NOT NULL DEFAULT 0,
            participant_count   INT             NOT NULL DEFAULT 0,
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            PRIMARY KEY (market_id, id),
            CONSTRAINT ck_market_options_tokens_gte_0 CHECK (total_tokens >= 0),
            CONSTRAINT ck_market_options_participants_gte_0 CHECK (participant_count >= 0)
        );
    """)
    for table in ("markets", "market_options"):
        op.execute(f"""
            CREATE TRIGGER trg_{table}_updated_at
                BEFORE UPDATE ON {table}
                FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
        """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS market_options;")
    op.execute("DROP TABLE IF EXISTS markets;")
