"""004: create payments, settlements and escrow_holds tables

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE payments (
            id                  VARCHAR(64)     PRIMARY KEY,
            collaboration_id    VARCHAR(64)     NOT NULL REFERENCES collaborations (id),
            external_order_id   VARCHAR(128)    NOT NULL,
            external_payment_id VARCHAR(128)    NOT NULL,
            verified_amount     BIGINT          NOT NULL,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_payments_external_payment_id UNIQUE (external_payment_id),
            CONSTRAINT ck_payments_amount_gt_0 CHECK (verified_amount > 0)
        );
    """)
    op.execute("CREATE INDEX idx_payments_collaboration ON payments (collaboration_id);")

    op.execute("""
        CREATE TABLE settlements (
            id                      VARCHAR(64)     PRIMARY KEY,
            collaboration_id        VARCHAR(64)     NOT NULL REFERENCES collaborations (id),
            payer_id                VARCHAR(64)     NOT NULL,
            payee_id                VARCHAR(64)     NOT NULL,
            total_amount            BIGINT          NOT NULL,
            commission_rate_bps     INTEGER         NOT NULL,
            commission_amount       BIGINT          NOT NULL,
            net_amount              BIGINT          NOT NULL,
            advance_amount          BIGINT          NOT NULL,
            final_amount            BIGINT          NOT NULL,
            advance_status          VARCHAR(20)     NOT NULL DEFAULT 'awaiting_admin',
            final_status            VARCHAR(20)     NOT NULL DEFAULT 'pending',
            advance_entry_id        BIGINT,
            final_entry_id          BIGINT,
            escrow_hold_id          VARCHAR(64),
            advance_evidence_ref    VARCHAR(500),
            advance_confirm_key     VARCHAR(128),
            advance_confirmed_at    TIMESTAMPTZ,
            advance_confirmed_by    VARCHAR(64),
            final_evidence_ref      VARCHAR(500),
            final_confirm_key       VARCHAR(128),
            final_confirmed_at      TIMESTAMPTZ,
            final_confirmed_by      VARCHAR(64),
            refund_reason           VARCHAR(2000),
            refunded_amount         BIGINT,
            refunded_at             TIMESTAMPTZ,
            refunded_by             VARCHAR(64),
            created_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_settlements_collaboration UNIQUE (collaboration_id),
            CONSTRAINT ck_settlements_total_gt_0    CHECK (total_amount > 0),
            CONSTRAINT ck_settlements_rate_range    CHECK (commission_rate_bps BETWEEN 0 AND 10000),
            CONSTRAINT ck_settlements_split_total   CHECK (commission_amount + net_amount = total_amount),
            CONSTRAINT ck_settlements_split_net     CHECK (advance_amount + final_amount = net_amount),
            CONSTRAINT ck_settlements_non_negative  CHECK (
                commission_amount >= 0 AND advance_amount >= 0 AND final_amount >= 0
            ),
            CONSTRAINT ck_settlements_advance_status CHECK (
                advance_status IN ('awaiting_admin', 'confirmed')
            ),
            CONSTRAINT ck_settlements_final_status CHECK (final_status IN ('pending', 'confirmed')),
            CONSTRAINT ck_settlements_final_after_advance CHECK (
                final_status = 'pending' OR advance_status = 'confirmed'
            )
        );
    """)
    op.execute("CREATE INDEX idx_settlements_pending ON settlements (advance_status, final_status);")

    op.execute("""
        CREATE TABLE escrow_holds (
            id                  VARCHAR(64)     PRIMARY KEY,
            collaboration_id    VARCHAR(64)     NOT NULL REFERENCES collaborations (id),
            settlement_id       VARCHAR(64)     NOT NULL REFERENCES settlements (id),
            payer_id            VARCHAR(64)     NOT NULL,
            amount              BIGINT          NOT NULL,
            released_amount     BIGINT          NOT NULL DEFAULT 0,
            refunded_amount     BIGINT          NOT NULL DEFAULT 0,
            status              VARCHAR(10)     NOT NULL DEFAULT 'held',
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            closed_at           TIMESTAMPTZ,
            CONSTRAINT uq_escrow_holds_settlement   UNIQUE (settlement_id),
            CONSTRAINT ck_escrow_amount_gt_0        CHECK (amount > 0),
            CONSTRAINT ck_escrow_drawdown           CHECK (
                released_amount >= 0 AND refunded_amount >= 0
                AND released_amount + refunded_amount <= amount
            ),
            CONSTRAINT ck_escrow_status CHECK (status IN ('held', 'released', 'refunded'))
        );
    """)
    op.execute("""
        ALTER TABLE settlements
        ADD CONSTRAINT fk_settlements_escrow_hold
        FOREIGN KEY (escrow_hold_id) REFERENCES escrow_holds (id);
    """)


def downgrade() -> None:
    op.execute("ALTER TABLE settlements DROP CONSTRAINT IF EXISTS fk_settlements_escrow_hold;")
    op.execute("DROP TABLE IF EXISTS escrow_holds CASCADE;")
    op.execute("DROP TABLE IF EXISTS settlements CASCADE;")
    op.execute("DROP TABLE IF EXISTS payments CASCADE;")
