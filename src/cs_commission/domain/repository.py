from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_commission.domain.models import CommissionSetting


class CommissionRepositoryProtocol(Protocol):
    async def get_active(self, db: AsyncSession) -> CommissionSetting | None: ...

    async def replace_active(
        self, db: AsyncSession, rate_bps: int, created_by: str
    ) -> CommissionSetting: ...
