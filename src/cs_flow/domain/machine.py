"""Collaboration flow state machine: pure guard and transition planning.

    negotiating -> price_agreed -> awaiting_payment -> admin_advance_pending
      -> work_in_progress <-> work_submitted -> work_approved -> closed

plus the terminal side branches `cancelled` (before payment) and `refunded`
(after payment, before closure).

`plan_transition` validates an action against the persisted state and the
awaiting role, and returns the StateChange to apply. It never touches
storage; the caller re-checks the same precondition at write time with a
compare-and-swap UPDATE.
"""

from dataclasses import dataclass

from src.cs_common.enums import FlowState, Role
from src.cs_common.errors import InvalidAmountError, InvalidStateTransitionError, NotYourTurnError
from src.cs_flow.domain.actions import (
    AcceptAmount,
    Action,
    ApproveWork,
    Cancel,
    ConfirmAdvance,
    ConfirmFinal,
    PaymentVerified,
    ProceedToPayment,
    ProposeAmount,
    Refund,
    RequestRevision,
    SubmitWork,
)
from src.cs_flow.domain.models import TERMINAL_STATES, Collaboration, StateChange


@dataclass(frozen=True)
class _Rule:
    from_states: frozenset[FlowState]
    roles: frozenset[Role]
    to_state: FlowState
    awaiting: Role | None
    turn_based: bool = True


_PAID_OPEN_STATES = frozenset({
    FlowState.ADMIN_ADVANCE_PENDING,
    FlowState.WORK_IN_PROGRESS,
    FlowState.WORK_SUBMITTED,
    FlowState.WORK_APPROVED,
})

_PARTIES = frozenset({Role.PAYER, Role.PAYEE})

_RULES: dict[type, _Rule] = {
    # awaiting role after a proposal is the counterpart; resolved in plan_transition
    ProposeAmount: _Rule(frozenset({FlowState.NEGOTIATING}), _PARTIES, FlowState.NEGOTIATING, None),
    AcceptAmount: _Rule(frozenset({FlowState.NEGOTIATING}), _PARTIES, FlowState.PRICE_AGREED, Role.PAYER),
    ProceedToPayment: _Rule(
        frozenset({FlowState.PRICE_AGREED}), frozenset({Role.PAYER}),
        FlowState.AWAITING_PAYMENT, Role.PAYER,
    ),
    PaymentVerified: _Rule(
        frozenset({FlowState.AWAITING_PAYMENT}), frozenset({Role.SYSTEM}),
        FlowState.ADMIN_ADVANCE_PENDING, Role.ADMIN, turn_based=False,
    ),
    ConfirmAdvance: _Rule(
        frozenset({FlowState.ADMIN_ADVANCE_PENDING}), frozenset({Role.ADMIN}),
        FlowState.WORK_IN_PROGRESS, Role.PAYEE,
    ),
    SubmitWork: _Rule(
        frozenset({FlowState.WORK_IN_PROGRESS}), frozenset({Role.PAYEE}),
        FlowState.WORK_SUBMITTED, Role.PAYER,
    ),
    ApproveWork: _Rule(
        frozenset({FlowState.WORK_SUBMITTED}), frozenset({Role.PAYER}),
        FlowState.WORK_APPROVED, Role.ADMIN,
    ),
    RequestRevision: _Rule(
        frozenset({FlowState.WORK_SUBMITTED}), frozenset({Role.PAYER}),
        FlowState.WORK_IN_PROGRESS, Role.PAYEE,
    ),
    ConfirmFinal: _Rule(
        frozenset({FlowState.WORK_APPROVED}), frozenset({Role.ADMIN}),
        FlowState.CLOSED, None,
    ),
    Cancel: _Rule(
        frozenset({FlowState.NEGOTIATING, FlowState.PRICE_AGREED, FlowState.AWAITING_PAYMENT}),
        _PARTIES, FlowState.CANCELLED, None, turn_based=False,
    ),
    Refund: _Rule(_PAID_OPEN_STATES, frozenset({Role.ADMIN}), FlowState.REFUNDED, None, turn_based=False),
}


def counterpart(role: Role) -> Role:
    return Role.PAYEE if role == Role.PAYER else Role.PAYER


def allowed_actions(collab: Collaboration, role: Role) -> list[str]:
    """Action names `role` could dispatch right now (for UI hints)."""
    state = FlowState(collab.flow_state)
    names = []
    for action_type, rule in _RULES.items():
        if state not in rule.from_states or role not in rule.roles:
            continue
        if rule.turn_based and collab.awaiting_role != role:
            continue
        if action_type is AcceptAmount and (
            collab.proposed_amount is None or collab.proposed_by == role
        ):
            continue
        names.append(action_type.name)
    return names


def plan_transition(collab: Collaboration, role: Role, action: Action) -> StateChange:
    """Validate `action` by `role` against the collaboration and plan its state change.

    Raises:
        InvalidStateTransitionError: the action is not legal in the current
            state (including every terminal state).
        NotYourTurnError: the action is legal here but not for this role, or
            the state is waiting on another party.
        InvalidAmountError: a proposal carries a non-positive amount, or an
            acceptance has nothing to accept.
    """
    rule = _RULES.get(type(action))
    state = FlowState(collab.flow_state)
    if rule is None or state in TERMINAL_STATES or state not in rule.from_states:
        raise InvalidStateTransitionError(action.name, collab.flow_state)
    if role not in rule.roles:
        raise NotYourTurnError(role.value, collab.awaiting_role)
    if rule.turn_based and collab.awaiting_role != role:
        raise NotYourTurnError(role.value, collab.awaiting_role)

    change = StateChange(
        new_state=rule.to_state.value,
        awaiting_role=rule.awaiting.value if rule.awaiting else None,
    )

    if isinstance(action, ProposeAmount):
        if isinstance(action.amount, bool) or not isinstance(action.amount, int) or action.amount <= 0:
            raise InvalidAmountError(f"proposal must be a positive integer, got {action.amount!r}")
        change.proposed_amount = action.amount
        change.proposed_by = role.value
        change.awaiting_role = counterpart(role).value
    elif isinstance(action, AcceptAmount):
        if collab.proposed_amount is None:
            raise InvalidAmountError("there is no proposal to accept")
        if collab.proposed_by == role:
            raise NotYourTurnError(role.value, collab.awaiting_role)
        change.agreed_amount = collab.proposed_amount
    elif isinstance(action, ProceedToPayment):
        change.external_order_id = action.external_order_id
    return change
