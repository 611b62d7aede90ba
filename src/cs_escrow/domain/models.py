"""Domain models for cs_escrow."""

from dataclasses import dataclass
from datetime import datetime

from src.cs_common.enums import EscrowStatus


@dataclass
class EscrowHold:
    id: str
    collaboration_id: str
    settlement_id: str
    payer_id: str
    amount: int                # original hold, minor units
    released_amount: int = 0
    refunded_amount: int = 0
    status: str = EscrowStatus.HELD.value
    created_at: datetime | None = None
    closed_at: datetime | None = None

    @property
    def remaining(self) -> int:
        return self.amount - self.released_amount - self.refunded_amount
