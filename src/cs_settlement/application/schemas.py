"""Pydantic schemas for settlement breakdown, timeline and admin views."""

from pydantic import BaseModel

from src.cs_common.datetime_utils import iso_or_none
from src.cs_common.minor_units import bps_to_percent_display, to_display
from src.cs_settlement.domain.models import SettlementRecord


class BreakdownResponse(BaseModel):
    """Consumed by the document generator; stable once open() has committed."""

    collaboration_id: str
    settlement_id: str
    total: int
    commission: int
    commission_rate: str
    commission_rate_bps: int
    net: int
    advance: int
    final: int
    total_display: str
    commission_display: str
    net_display: str
    advance_display: str
    final_display: str
    advance_status: str
    final_status: str

    @classmethod
    def from_record(cls, record: SettlementRecord) -> "BreakdownResponse":
        return cls(
            collaboration_id=record.collaboration_id,
            settlement_id=record.id,
            total=record.total_amount,
            commission=record.commission_amount,
            commission_rate=bps_to_percent_display(record.commission_rate_bps),
            commission_rate_bps=record.commission_rate_bps,
            net=record.net_amount,
            advance=record.advance_amount,
            final=record.final_amount,
            total_display=to_display(record.total_amount),
            commission_display=to_display(record.commission_amount),
            net_display=to_display(record.net_amount),
            advance_display=to_display(record.advance_amount),
            final_display=to_display(record.final_amount),
            advance_status=record.advance_status,
            final_status=record.final_status,
        )


class TimelineItem(BaseModel):
    event: str            # payment_received | advance_released | final_released | refunded
    at: str | None
    amount: int
    amount_display: str
    by: str | None = None


class TimelineResponse(BaseModel):
    collaboration_id: str
    settlement_id: str
    items: list[TimelineItem]


class SettlementAdminView(BaseModel):
    """Full record for the admin surface, evidence references included."""

    id: str
    collaboration_id: str
    payer_id: str
    payee_id: str
    total_amount: int
    commission_rate_bps: int
    commission_amount: int
    net_amount: int
    advance_amount: int
    final_amount: int
    advance_status: str
    final_status: str
    escrow_hold_id: str | None
    advance_evidence_ref: str | None
    advance_confirmed_at: str | None
    advance_confirmed_by: str | None
    final_evidence_ref: str | None
    final_confirmed_at: str | None
    final_confirmed_by: str | None
    refund_reason: str | None
    refunded_amount: int | None
    refunded_at: str | None
    refunded_by: str | None
    created_at: str | None

    @classmethod
    def from_record(cls, record: SettlementRecord) -> "SettlementAdminView":
        return cls(
            id=record.id,
            collaboration_id=record.collaboration_id,
            payer_id=record.payer_id,
            payee_id=record.payee_id,
            total_amount=record.total_amount,
            commission_rate_bps=record.commission_rate_bps,
            commission_amount=record.commission_amount,
            net_amount=record.net_amount,
            advance_amount=record.advance_amount,
            final_amount=record.final_amount,
            advance_status=record.advance_status,
            final_status=record.final_status,
            escrow_hold_id=record.escrow_hold_id,
            advance_evidence_ref=record.advance_evidence_ref,
            advance_confirmed_at=iso_or_none(record.advance_confirmed_at),
            advance_confirmed_by=record.advance_confirmed_by,
            final_evidence_ref=record.final_evidence_ref,
            final_confirmed_at=iso_or_none(record.final_confirmed_at),
            final_confirmed_by=record.final_confirmed_by,
            refund_reason=record.refund_reason,
            refunded_amount=record.refunded_amount,
            refunded_at=iso_or_none(record.refunded_at),
            refunded_by=record.refunded_by,
            created_at=iso_or_none(record.created_at),
        )
