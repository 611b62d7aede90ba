"""Pydantic schemas for the commission settings API."""

from pydantic import BaseModel, Field

from src.cs_commission.domain.models import CommissionSetting
from src.cs_common.datetime_utils import iso_or_none
from src.cs_common.minor_units import bps_to_percent_display


class SetCommissionRequest(BaseModel):
    rate_bps: int = Field(..., ge=0, le=10000, description="Commission rate in basis points (1000 = 10%)")


class CommissionSettingResponse(BaseModel):
    id: int
    rate_bps: int
    rate_display: str
    is_active: bool
    effective_from: str | None
    created_by: str | None

    @classmethod
    def from_setting(cls, setting: CommissionSetting) -> "CommissionSettingResponse":
        return cls(
            id=setting.id,
            rate_bps=setting.rate_bps,
            rate_display=bps_to_percent_display(setting.rate_bps),
            is_active=setting.is_active,
            effective_from=iso_or_none(setting.effective_from),
            created_by=setting.created_by,
        )
