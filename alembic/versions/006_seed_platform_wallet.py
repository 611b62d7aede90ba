"""006: seed the platform commission wallet

Revision ID: 006
Revises: 005
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # The commission rate is intentionally not seeded; an admin must set it.
    op.execute("""
        INSERT INTO wallets (payee_id, balance, version)
        VALUES ('PLATFORM_COMMISSION', 0, 0)
        ON CONFLICT (payee_id) DO NOTHING;
    """)


def downgrade() -> None:
    op.execute("DELETE FROM wallets WHERE payee_id = 'PLATFORM_COMMISSION' AND balance = 0;")
