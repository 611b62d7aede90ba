"""Domain models for cs_payment."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class PaymentNotice:
    """What the payment verifier reports for one captured charge."""

    external_order_id: str
    external_payment_id: str
    verified_amount: int              # minor units
    signature: str


@dataclass
class PaymentRecord:
    id: str
    collaboration_id: str
    external_order_id: str
    external_payment_id: str          # UNIQUE: first writer wins
    verified_amount: int
    created_at: datetime | None = None
