"""005: create prediction_commitments table

Revision ID: 005
Revises: 004
Create Date: 2026-10-16
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE prediction_commitments (
            id                  VARCHAR(64)         PRIMARY KEY,
            user_id             VARCHAR(128)        NOT NULL,
            market_id           VARCHAR(64)         NOT NULL REFERENCES markets(id),
            option_id           VARCHAR(64)         NOT NULL,
            position            VARCHAR(8)          NOT NULL,
            tokens_committed    INT                 NOT NULL,
            odds                DOUBLE PRECISION    NOT NULL,
            potential_winning   BIGINT              NOT NULL,
            status              VARCHAR(16)         NOT NULL DEFAULT 'active',
            committed_at        TIMESTAMPTZ         NOT NULL DEFAULT NOW(),
            resolved_at         TIMESTAMPTZ,
            metadata            JSONB               NOT NULL DEFAULT '{}'::jsonb,
            CONSTRAINT ck_prediction_commitments_tokens_gt_0 CHECK (tokens_committed > 0),
            CONSTRAINT ck_prediction_commitments_odds_gt_0   CHECK (odds > 0),
            CONSTRAINT ck_prediction_commitments_position CHECK (position IN ('yes', 'no')),
            CONSTRAINT ck_prediction_commitments_status CHECK (
                status IN ('active', 'won', 'lost', 'refunded')
            ),
            CONSTRAINT ck_prediction_commitments_resolved CHECK (
                (status = 'active') = (resolved_at IS NULL)
            )
        );
    """)
    op.execute("""
        CREATE INDEX idx_prediction_commitments_user_active
            ON prediction_commitments (user_id, market_id) WHERE status = 'active';
    """)
    op.execute("""
        CREATE INDEX idx_prediction_commitments_market
            ON prediction_commitments (market_id, status);
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS prediction_commitments;")
