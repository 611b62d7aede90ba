"""Pydantic schemas for the admin settlement surface."""

from typing import Literal

from pydantic import BaseModel, Field

from src.cs_common.minor_units import to_display
from src.cs_settlement.application.schemas import SettlementAdminView
from src.cs_settlement.domain.models import SettlementStats

PendingFilter = Literal["advance_pending", "final_pending", "all"]


class ConfirmReleaseRequest(BaseModel):
    evidence_ref: str | None = Field(
        None, max_length=500, description="Transfer reference or screenshot URL"
    )
    idempotency_key: str | None = Field(None, max_length=128)


class RefundRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class DirectCreditRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Minor units")
    idempotency_key: str = Field(..., min_length=1, max_length=128)
    description: str | None = Field(None, max_length=500)


class PendingSettlementItem(BaseModel):
    settlement: SettlementAdminView
    title: str | None
    flow_state: str
    current_action: str


class PendingListResponse(BaseModel):
    items: list[PendingSettlementItem]
    next_cursor: str | None
    has_more: bool


class StatisticsResponse(BaseModel):
    days: int
    total_settlements: int
    total_volume: int
    total_volume_display: str
    total_commission: int
    total_commission_display: str
    advance_released: int
    final_released: int
    refunded_volume: int
    advance_pending_count: int
    final_pending_count: int
    closed_count: int
    refunded_count: int

    @classmethod
    def from_stats(cls, days: int, stats: SettlementStats) -> "StatisticsResponse":
        return cls(
            days=days,
            total_settlements=stats.total_settlements,
            total_volume=stats.total_volume,
            total_volume_display=to_display(stats.total_volume),
            total_commission=stats.total_commission,
            total_commission_display=to_display(stats.total_commission),
            advance_released=stats.advance_released,
            final_released=stats.final_released,
            refunded_volume=stats.refunded_volume,
            advance_pending_count=stats.advance_pending_count,
            final_pending_count=stats.final_pending_count,
            closed_count=stats.closed_count,
            refunded_count=stats.refunded_count,
        )


class InvariantReport(BaseModel):
    ok: bool
    violations: list[str]


class DirectCreditResponse(BaseModel):
    entry_id: int
    payee_id: str
    amount: int
    amount_display: str
    applied: bool
    balance: int | None
