"""002: create commission_settings table

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE commission_settings (
            id              BIGSERIAL       PRIMARY KEY,
            rate_bps        INTEGER         NOT NULL,
            is_active       BOOLEAN         NOT NULL DEFAULT TRUE,
            effective_from  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            created_by      VARCHAR(64),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_commission_rate_range CHECK (rate_bps BETWEEN 0 AND 10000)
        );
    """)
    # At most one active rate at any time
    op.execute("""
        CREATE UNIQUE INDEX uq_commission_settings_active
        ON commission_settings (is_active)
        WHERE is_active;
    """)
    op.execute(
        "COMMENT ON TABLE commission_settings IS "
        "'Platform commission history. No row is seeded: a missing active rate is a fatal "
        "configuration error. rate_bps: 1000 = 10%';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS commission_settings CASCADE;")
