"""Domain models for cs_flow: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.cs_common.enums import FlowState, Role

TERMINAL_STATES = frozenset({FlowState.CLOSED, FlowState.CANCELLED, FlowState.REFUNDED})


@dataclass
class Collaboration:
    id: str
    payer_id: str
    payee_id: str
    title: str
    flow_state: str
    awaiting_role: str | None        # Role value, None once terminal
    proposed_amount: int | None = None
    proposed_by: str | None = None   # Role.PAYER / Role.PAYEE
    agreed_amount: int | None = None
    external_order_id: str | None = None
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return FlowState(self.flow_state) in TERMINAL_STATES

    def role_of(self, user_id: str) -> Role | None:
        if user_id == self.payer_id:
            return Role.PAYER
        if user_id == self.payee_id:
            return Role.PAYEE
        return None


@dataclass
class FlowTransition:
    """One audit-trail row. Append-only."""

    id: int
    collaboration_id: str
    previous_state: str
    new_state: str
    awaiting_role: str | None
    action: str
    actor_id: str
    actor_kind: str
    detail: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass
class StateChange:
    """Everything the compare-and-swap UPDATE needs to move a collaboration."""

    new_state: str
    awaiting_role: str | None
    proposed_amount: int | None = None
    proposed_by: str | None = None
    agreed_amount: int | None = None
    external_order_id: str | None = None
