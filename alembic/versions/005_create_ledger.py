"""005: create wallets and ledger_entries tables

Revision ID: 005
Revises: 004
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE wallets (
            payee_id    VARCHAR(64)     PRIMARY KEY,
            balance     BIGINT          NOT NULL DEFAULT 0,
            version     BIGINT          NOT NULL DEFAULT 0,
            updated_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_wallets_balance_gte_0 CHECK (balance >= 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_wallets_updated_at
            BEFORE UPDATE ON wallets
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)

    op.execute("""
        CREATE TABLE ledger_entries (
            id              BIGSERIAL       PRIMARY KEY,
            payee_id        VARCHAR(64)     NOT NULL,
            amount          BIGINT          NOT NULL,
            direction       VARCHAR(10)     NOT NULL DEFAULT 'credit',
            stage           VARCHAR(20)     NOT NULL,
            status          VARCHAR(20)     NOT NULL,
            idempotency_key VARCHAR(160)    NOT NULL,
            settlement_id   VARCHAR(64)     REFERENCES settlements (id),
            description     VARCHAR(500),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            completed_at    TIMESTAMPTZ,
            CONSTRAINT uq_ledger_idempotency_key UNIQUE (idempotency_key),
            CONSTRAINT ck_ledger_amount_gt_0 CHECK (amount > 0),
            CONSTRAINT ck_ledger_direction CHECK (direction IN ('credit', 'debit')),
            CONSTRAINT ck_ledger_stage CHECK (
                stage IN ('advance', 'final', 'direct_payment', 'refund', 'commission')
            ),
            CONSTRAINT ck_ledger_status CHECK (status IN ('pending', 'completed', 'cancelled')),
            CONSTRAINT ck_ledger_completed_at CHECK (
                (status = 'completed') = (completed_at IS NOT NULL)
            )
        );
    """)
    op.execute("CREATE INDEX idx_ledger_payee ON ledger_entries (payee_id, id DESC);")
    op.execute("CREATE INDEX idx_ledger_settlement ON ledger_entries (settlement_id);")
    op.execute("""
        CREATE TRIGGER trg_ledger_entries_no_delete
            BEFORE DELETE ON ledger_entries
            FOR EACH ROW EXECUTE FUNCTION fn_reject_delete();
    """)
    op.execute(
        "COMMENT ON TABLE ledger_entries IS "
        "'Wallet movements. Rows are never deleted; only status moves pending -> "
        "completed | cancelled. Amounts in minor units';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ledger_entries CASCADE;")
    op.execute("DROP TABLE IF EXISTS wallets CASCADE;")
