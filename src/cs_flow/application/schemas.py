"""Pydantic schemas for the collaboration flow API.

Actions arrive as a discriminated union keyed on `action`; each body converts
itself to the matching domain action. PaymentVerified is deliberately absent:
only the payment intake endpoint can produce it.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from src.cs_common.datetime_utils import iso_or_none
from src.cs_common.minor_units import to_display
from src.cs_flow.domain import actions as act
from src.cs_flow.domain.models import Collaboration, FlowTransition
from src.cs_settlement.application.schemas import BreakdownResponse

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class CreateCollaborationRequest(BaseModel):
    payer_id: str = Field(..., min_length=1, max_length=64)
    payee_id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=200)
    proposed_amount: int | None = Field(None, gt=0, description="Opening offer in minor units")


class ProposeAmountBody(BaseModel):
    action: Literal["propose_amount"]
    amount: int = Field(..., gt=0)

    def to_action(self) -> act.ProposeAmount:
        return act.ProposeAmount(amount=self.amount)


class AcceptAmountBody(BaseModel):
    action: Literal["accept_amount"]

    def to_action(self) -> act.AcceptAmount:
        return act.AcceptAmount()


class ProceedToPaymentBody(BaseModel):
    action: Literal["proceed_to_payment"]
    external_order_id: str | None = Field(None, max_length=128)

    def to_action(self) -> act.ProceedToPayment:
        return act.ProceedToPayment(external_order_id=self.external_order_id)


class ConfirmAdvanceBody(BaseModel):
    action: Literal["confirm_advance"]
    evidence_ref: str | None = Field(None, max_length=500)
    idempotency_key: str | None = Field(None, max_length=128)

    def to_action(self) -> act.ConfirmAdvance:
        return act.ConfirmAdvance(
            evidence_ref=self.evidence_ref, idempotency_key=self.idempotency_key
        )


class SubmitWorkBody(BaseModel):
    action: Literal["submit_work"]
    submission_ref: str | None = Field(None, max_length=500)
    note: str | None = Field(None, max_length=2000)

    def to_action(self) -> act.SubmitWork:
        return act.SubmitWork(submission_ref=self.submission_ref, note=self.note)


class ApproveWorkBody(BaseModel):
    action: Literal["approve_work"]

    def to_action(self) -> act.ApproveWork:
        return act.ApproveWork()


class RequestRevisionBody(BaseModel):
    action: Literal["request_revision"]
    reason: str | None = Field(None, max_length=2000)

    def to_action(self) -> act.RequestRevision:
        return act.RequestRevision(reason=self.reason)


class ConfirmFinalBody(BaseModel):
    action: Literal["confirm_final"]
    evidence_ref: str | None = Field(None, max_length=500)
    idempotency_key: str | None = Field(None, max_length=128)

    def to_action(self) -> act.ConfirmFinal:
        return act.ConfirmFinal(
            evidence_ref=self.evidence_ref, idempotency_key=self.idempotency_key
        )


class CancelBody(BaseModel):
    action: Literal["cancel"]
    reason: str | None = Field(None, max_length=2000)

    def to_action(self) -> act.Cancel:
        return act.Cancel(reason=self.reason)


class RefundBody(BaseModel):
    action: Literal["refund"]
    reason: str = Field(..., min_length=1, max_length=2000)

    def to_action(self) -> act.Refund:
        return act.Refund(reason=self.reason)


ActionBody = Annotated[
    Union[
        ProposeAmountBody,
        AcceptAmountBody,
        ProceedToPaymentBody,
        ConfirmAdvanceBody,
        SubmitWorkBody,
        ApproveWorkBody,
        RequestRevisionBody,
        ConfirmFinalBody,
        CancelBody,
        RefundBody,
    ],
    Field(discriminator="action"),
]


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class CollaborationResponse(BaseModel):
    id: str
    payer_id: str
    payee_id: str
    title: str
    flow_state: str
    awaiting_role: str | None
    proposed_amount: int | None
    proposed_amount_display: str | None
    proposed_by: str | None
    agreed_amount: int | None
    agreed_amount_display: str | None
    external_order_id: str | None
    version: int
    your_role: str | None
    allowed_actions: list[str]
    created_at: str | None
    updated_at: str | None

    @classmethod
    def from_collaboration(
        cls, collab: Collaboration, your_role: str | None, allowed_actions: list[str]
    ) -> "CollaborationResponse":
        return cls(
            id=collab.id,
            payer_id=collab.payer_id,
            payee_id=collab.payee_id,
            title=collab.title,
            flow_state=collab.flow_state,
            awaiting_role=collab.awaiting_role,
            proposed_amount=collab.proposed_amount,
            proposed_amount_display=(
                to_display(collab.proposed_amount) if collab.proposed_amount is not None else None
            ),
            proposed_by=collab.proposed_by,
            agreed_amount=collab.agreed_amount,
            agreed_amount_display=(
                to_display(collab.agreed_amount) if collab.agreed_amount is not None else None
            ),
            external_order_id=collab.external_order_id,
            version=collab.version,
            your_role=your_role,
            allowed_actions=allowed_actions,
            created_at=iso_or_none(collab.created_at),
            updated_at=iso_or_none(collab.updated_at),
        )


class HistoryItem(BaseModel):
    id: int
    previous_state: str
    new_state: str
    awaiting_role: str | None
    action: str
    actor_id: str
    actor_kind: str
    detail: dict[str, Any]
    created_at: str | None

    @classmethod
    def from_transition(cls, t: FlowTransition, include_admin_fields: bool) -> "HistoryItem":
        detail = t.detail
        if not include_admin_fields:
            detail = {k: v for k, v in detail.items() if k not in act.ADMIN_ONLY_FIELDS}
        return cls(
            id=t.id,
            previous_state=t.previous_state,
            new_state=t.new_state,
            awaiting_role=t.awaiting_role,
            action=t.action,
            actor_id=t.actor_id,
            actor_kind=t.actor_kind,
            detail=detail,
            created_at=iso_or_none(t.created_at),
        )


class HistoryResponse(BaseModel):
    collaboration_id: str
    items: list[HistoryItem]


class DispatchResponse(BaseModel):
    collaboration: CollaborationResponse
    action: str
    replayed: bool = False
    breakdown: BreakdownResponse | None = None
