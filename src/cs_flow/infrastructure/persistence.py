"""CollaborationRepository: collaborations and their flow_transitions audit trail.

State changes are compare-and-swap: the UPDATE only matches when the row is
still in the state (and version) the guard was evaluated against. A result of
0 rows means a concurrent request moved the collaboration first.
"""

import json
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_common.actor import Actor
from src.cs_common.errors import IdempotencyConflictError, InternalError
from src.cs_flow.domain.models import Collaboration, FlowTransition, StateChange

_COLUMNS = """id, payer_id, payee_id, title, flow_state, awaiting_role,
              proposed_amount, proposed_by, agreed_amount, external_order_id,
              version, created_at, updated_at"""

_INSERT_SQL = text(f"""
    INSERT INTO collaborations
        (id, payer_id, payee_id, title, flow_state, awaiting_role,
         proposed_amount, proposed_by)
    VALUES
        (:id, :payer_id, :payee_id, :title, :flow_state, :awaiting_role,
         :proposed_amount, :proposed_by)
    RETURNING {_COLUMNS}
""")

_GET_SQL = text(f"SELECT {_COLUMNS} FROM collaborations WHERE id = :collaboration_id")

_GET_BY_ORDER_SQL = text(
    f"SELECT {_COLUMNS} FROM collaborations WHERE external_order_id = :external_order_id"
)

_ORDER_CONSTRAINT = "uq_collaborations_order"

# COALESCE keeps columns the change does not touch
_CAS_SQL = text(f"""
    UPDATE collaborations
    SET flow_state = :new_state,
        awaiting_role = :awaiting_role,
        proposed_amount = COALESCE(:proposed_amount, proposed_amount),
        proposed_by = COALESCE(:proposed_by, proposed_by),
        agreed_amount = COALESCE(:agreed_amount, agreed_amount),
        external_order_id = COALESCE(:external_order_id, external_order_id),
        version = version + 1,
        updated_at = NOW()
    WHERE id = :collaboration_id
      AND flow_state = :expected_state
      AND version = :expected_version
    RETURNING {_COLUMNS}
""")

_INSERT_TRANSITION_SQL = text("""
    INSERT INTO flow_transitions
        (collaboration_id, previous_state, new_state, awaiting_role,
         action, actor_id, actor_kind, detail)
    VALUES
        (:collaboration_id, :previous_state, :new_state, :awaiting_role,
         :action, :actor_id, :actor_kind, CAST(:detail AS JSONB))
    RETURNING id, collaboration_id, previous_state, new_state, awaiting_role,
              action, actor_id, actor_kind, detail, created_at
""")

_LIST_TRANSITIONS_SQL = text("""
    SELECT id, collaboration_id, previous_state, new_state, awaiting_role,
           action, actor_id, actor_kind, detail, created_at
    FROM flow_transitions
    WHERE collaboration_id = :collaboration_id
    ORDER BY id ASC
""")


def _row_to_collaboration(row: object) -> Collaboration:
    return Collaboration(
        id=row.id,  # type: ignore[attr-defined]
        payer_id=row.payer_id,  # type: ignore[attr-defined]
        payee_id=row.payee_id,  # type: ignore[attr-defined]
        title=row.title,  # type: ignore[attr-defined]
        flow_state=row.flow_state,  # type: ignore[attr-defined]
        awaiting_role=row.awaiting_role,  # type: ignore[attr-defined]
        proposed_amount=row.proposed_amount,  # type: ignore[attr-defined]
        proposed_by=row.proposed_by,  # type: ignore[attr-defined]
        agreed_amount=row.agreed_amount,  # type: ignore[attr-defined]
        external_order_id=row.external_order_id,  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_transition(row: object) -> FlowTransition:
    detail = row.detail  # type: ignore[attr-defined]
    if isinstance(detail, str):
        detail = json.loads(detail)
    return FlowTransition(
        id=row.id,  # type: ignore[attr-defined]
        collaboration_id=row.collaboration_id,  # type: ignore[attr-defined]
        previous_state=row.previous_state,  # type: ignore[attr-defined]
        new_state=row.new_state,  # type: ignore[attr-defined]
        awaiting_role=row.awaiting_role,  # type: ignore[attr-defined]
        action=row.action,  # type: ignore[attr-defined]
        actor_id=row.actor_id,  # type: ignore[attr-defined]
        actor_kind=row.actor_kind,  # type: ignore[attr-defined]
        detail=detail or {},
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class CollaborationRepository:
    async def create(self, db: AsyncSession, collab: Collaboration) -> Collaboration:
        result = await db.execute(
            _INSERT_SQL,
            {
                "id": collab.id,
                "payer_id": collab.payer_id,
                "payee_id": collab.payee_id,
                "title": collab.title,
                "flow_state": collab.flow_state,
                "awaiting_role": collab.awaiting_role,
                "proposed_amount": collab.proposed_amount,
                "proposed_by": collab.proposed_by,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("collaborations insert returned no rows")
        return _row_to_collaboration(row)

    async def get(self, db: AsyncSession, collaboration_id: str) -> Collaboration | None:
        result = await db.execute(_GET_SQL, {"collaboration_id": collaboration_id})
        row = result.fetchone()
        return _row_to_collaboration(row) if row else None

    async def get_by_external_order_id(
        self, db: AsyncSession, external_order_id: str
    ) -> Collaboration | None:
        result = await db.execute(_GET_BY_ORDER_SQL, {"external_order_id": external_order_id})
        row = result.fetchone()
        return _row_to_collaboration(row) if row else None

    async def compare_and_set(
        self,
        db: AsyncSession,
        collab: Collaboration,
        change: StateChange,
    ) -> Collaboration | None:
        """Raises IdempotencyConflictError when the external order id is
        already held by another collaboration."""
        try:
            result = await db.execute(
                _CAS_SQL,
                {
                    "collaboration_id": collab.id,
                    "expected_state": collab.flow_state,
                    "expected_version": collab.version,
                    "new_state": change.new_state,
                    "awaiting_role": change.awaiting_role,
                    "proposed_amount": change.proposed_amount,
                    "proposed_by": change.proposed_by,
                    "agreed_amount": change.agreed_amount,
                    "external_order_id": change.external_order_id,
                },
            )
        except IntegrityError as exc:
            if change.external_order_id and _ORDER_CONSTRAINT in str(exc.orig):
                raise IdempotencyConflictError(change.external_order_id) from exc
            raise
        row = result.fetchone()
        return _row_to_collaboration(row) if row else None

    async def record_transition(
        self,
        db: AsyncSession,
        collaboration_id: str,
        previous_state: str,
        change: StateChange,
        action: str,
        actor: Actor,
        detail: dict[str, Any],
    ) -> FlowTransition:
        result = await db.execute(
            _INSERT_TRANSITION_SQL,
            {
                "collaboration_id": collaboration_id,
                "previous_state": previous_state,
                "new_state": change.new_state,
                "awaiting_role": change.awaiting_role,
                "action": action,
                "actor_id": actor.id,
                "actor_kind": actor.kind.value,
                "detail": json.dumps(detail),
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("flow_transitions insert returned no rows")
        return _row_to_transition(row)

    async def list_transitions(
        self, db: AsyncSession, collaboration_id: str
    ) -> list[FlowTransition]:
        result = await db.execute(_LIST_TRANSITIONS_SQL, {"collaboration_id": collaboration_id})
        return [_row_to_transition(row) for row in result.fetchall()]
