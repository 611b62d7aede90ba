"""Closed set of actions a collaboration accepts.

Each action is a frozen dataclass tagged with a stable `name`; the HTTP layer
maps its discriminated union onto these. Nothing dispatches on free-form
action strings.
"""

from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Union


@dataclass(frozen=True)
class ProposeAmount:
    name: ClassVar[str] = "propose_amount"
    amount: int


@dataclass(frozen=True)
class AcceptAmount:
    name: ClassVar[str] = "accept_amount"


@dataclass(frozen=True)
class ProceedToPayment:
    name: ClassVar[str] = "proceed_to_payment"
    external_order_id: str | None = None


@dataclass(frozen=True)
class PaymentVerified:
    name: ClassVar[str] = "payment_verified"
    external_order_id: str
    external_payment_id: str
    verified_amount: int


@dataclass(frozen=True)
class ConfirmAdvance:
    name: ClassVar[str] = "confirm_advance"
    evidence_ref: str | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class SubmitWork:
    name: ClassVar[str] = "submit_work"
    submission_ref: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class ApproveWork:
    name: ClassVar[str] = "approve_work"


@dataclass(frozen=True)
class RequestRevision:
    name: ClassVar[str] = "request_revision"
    reason: str | None = None


@dataclass(frozen=True)
class ConfirmFinal:
    name: ClassVar[str] = "confirm_final"
    evidence_ref: str | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class Cancel:
    name: ClassVar[str] = "cancel"
    reason: str | None = None


@dataclass(frozen=True)
class Refund:
    name: ClassVar[str] = "refund"
    reason: str


Action = Union[
    ProposeAmount,
    AcceptAmount,
    ProceedToPayment,
    PaymentVerified,
    ConfirmAdvance,
    SubmitWork,
    ApproveWork,
    RequestRevision,
    ConfirmFinal,
    Cancel,
    Refund,
]

# Fields that only the admin-facing surface may see
ADMIN_ONLY_FIELDS = frozenset({"evidence_ref", "idempotency_key"})


def action_detail(action: Action) -> dict[str, Any]:
    """Audit-trail payload of an action, without None fields."""
    return {k: v for k, v in asdict(action).items() if v is not None}
