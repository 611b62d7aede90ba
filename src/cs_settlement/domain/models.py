"""Domain models for cs_settlement: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime

from src.cs_common.enums import AdvanceStatus, FinalStatus


@dataclass
class SettlementRecord:
    """Immutable breakdown plus the mutable advance/final release status pair."""

    id: str
    collaboration_id: str
    payer_id: str
    payee_id: str
    total_amount: int
    commission_rate_bps: int         # snapshot taken at open(), never re-read
    commission_amount: int
    net_amount: int
    advance_amount: int
    final_amount: int
    advance_status: str = AdvanceStatus.AWAITING_ADMIN.value
    final_status: str = FinalStatus.PENDING.value
    advance_entry_id: int | None = None
    final_entry_id: int | None = None
    escrow_hold_id: str | None = None
    advance_evidence_ref: str | None = None
    advance_confirm_key: str | None = None
    advance_confirmed_at: datetime | None = None
    advance_confirmed_by: str | None = None
    final_evidence_ref: str | None = None
    final_confirm_key: str | None = None
    final_confirmed_at: datetime | None = None
    final_confirmed_by: str | None = None
    refund_reason: str | None = None
    refunded_amount: int | None = None
    refunded_at: datetime | None = None
    refunded_by: str | None = None
    created_at: datetime | None = None

    @property
    def advance_confirmed(self) -> bool:
        return self.advance_status == AdvanceStatus.CONFIRMED

    @property
    def final_confirmed(self) -> bool:
        return self.final_status == FinalStatus.CONFIRMED

    @property
    def is_refunded(self) -> bool:
        return self.refunded_at is not None


@dataclass
class PendingSettlement:
    """A settlement joined with its collaboration's flow state, for the admin queue."""

    settlement: SettlementRecord
    flow_state: str
    title: str | None = None


@dataclass
class SettlementStats:
    total_settlements: int = 0
    total_volume: int = 0
    total_commission: int = 0
    advance_released: int = 0
    final_released: int = 0
    refunded_volume: int = 0
    advance_pending_count: int = 0
    final_pending_count: int = 0
    closed_count: int = 0
    refunded_count: int = 0
