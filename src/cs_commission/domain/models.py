"""Domain models for cs_commission: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class CommissionBreakdown:
    total_amount: int        # minor units
    commission_rate_bps: int
    commission_amount: int
    net_amount: int
    advance_amount: int      # 30% of net, floored
    final_amount: int        # net - advance


@dataclass
class CommissionSetting:
    id: int
    rate_bps: int
    is_active: bool
    effective_from: datetime
    created_by: str | None = None
    created_at: datetime | None = None
