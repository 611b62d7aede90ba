"""003: create collaborations and flow_transitions tables

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_STATES = """'negotiating', 'price_agreed', 'awaiting_payment', 'admin_advance_pending',
             'work_in_progress', 'work_submitted', 'work_approved',
             'closed', 'cancelled', 'refunded'"""


def upgrade() -> None:
    op.execute(f"""
        CREATE TABLE collaborations (
            id                  VARCHAR(64)     PRIMARY KEY,
            payer_id            VARCHAR(64)     NOT NULL,
            payee_id            VARCHAR(64)     NOT NULL,
            title               VARCHAR(200)    NOT NULL,
            flow_state          VARCHAR(30)     NOT NULL DEFAULT 'negotiating',
            awaiting_role       VARCHAR(10),
            proposed_amount     BIGINT,
            proposed_by         VARCHAR(10),
            agreed_amount       BIGINT,
            external_order_id   VARCHAR(128),
            version             BIGINT          NOT NULL DEFAULT 0,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_collaborations_order      UNIQUE (external_order_id),
            CONSTRAINT ck_collaborations_parties    CHECK (payer_id <> payee_id),
            CONSTRAINT ck_collaborations_state      CHECK (flow_state IN ({_STATES})),
            CONSTRAINT ck_collaborations_awaiting   CHECK (
                awaiting_role IS NULL OR awaiting_role IN ('payer', 'payee', 'admin')
            ),
            CONSTRAINT ck_collaborations_proposer   CHECK (
                proposed_by IS NULL OR proposed_by IN ('payer', 'payee')
            ),
            CONSTRAINT ck_collaborations_proposed_gt_0 CHECK (
                proposed_amount IS NULL OR proposed_amount > 0
            ),
            CONSTRAINT ck_collaborations_agreed_gt_0 CHECK (
                agreed_amount IS NULL OR agreed_amount > 0
            )
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_collaborations_updated_at
            BEFORE UPDATE ON collaborations
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)
    op.execute("CREATE INDEX idx_collaborations_payer ON collaborations (payer_id, created_at DESC);")
    op.execute("CREATE INDEX idx_collaborations_payee ON collaborations (payee_id, created_at DESC);")

    op.execute("""
        CREATE TABLE flow_transitions (
            id                  BIGSERIAL       PRIMARY KEY,
            collaboration_id    VARCHAR(64)     NOT NULL REFERENCES collaborations (id),
            previous_state      VARCHAR(30)     NOT NULL,
            new_state           VARCHAR(30)     NOT NULL,
            awaiting_role       VARCHAR(10),
            action              VARCHAR(40)     NOT NULL,
            actor_id            VARCHAR(64)     NOT NULL,
            actor_kind          VARCHAR(10)     NOT NULL,
            detail              JSONB           NOT NULL DEFAULT '{}'::jsonb,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_flow_transitions_actor_kind CHECK (
                actor_kind IN ('user', 'admin', 'system')
            )
        );
    """)
    op.execute(
        "CREATE INDEX idx_flow_transitions_collab ON flow_transitions (collaboration_id, id);"
    )
    op.execute("""
        CREATE TRIGGER trg_flow_transitions_no_delete
            BEFORE DELETE ON flow_transitions
            FOR EACH ROW EXECUTE FUNCTION fn_reject_delete();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS flow_transitions CASCADE;")
    op.execute("DROP TABLE IF EXISTS collaborations CASCADE;")
