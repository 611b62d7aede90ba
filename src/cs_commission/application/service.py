"""CommissionSettingsService: source of the platform commission rate.

There is no fallback rate. A missing active setting is a configuration
error surfaced as ConfigurationMissingError (HTTP 503), and nothing
downstream is written.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_commission.application.schemas import CommissionSettingResponse
from src.cs_commission.domain.calculator import MAX_RATE_BPS
from src.cs_commission.domain.repository import CommissionRepositoryProtocol
from src.cs_commission.infrastructure.persistence import CommissionRepository
from src.cs_common.actor import Actor
from src.cs_common.errors import (
    AdminRequiredError,
    ConfigurationMissingError,
    InvalidAmountError,
)

logger = logging.getLogger(__name__)


class CommissionSettingsService:
    def __init__(self, repo: CommissionRepositoryProtocol | None = None) -> None:
        self._repo: CommissionRepositoryProtocol = repo or CommissionRepository()

    async def get_active_rate(self, db: AsyncSession) -> int:
        """Active rate in bps. Does not commit; safe inside a caller's transaction."""
        setting = await self._repo.get_active(db)
        if setting is None:
            logger.error("No active commission setting; refusing to compute a breakdown")
            raise ConfigurationMissingError("no active commission rate")
        return setting.rate_bps

    async def get_active(self, db: AsyncSession) -> CommissionSettingResponse:
        setting = await self._repo.get_active(db)
        if setting is None:
            raise ConfigurationMissingError("no active commission rate")
        return CommissionSettingResponse.from_setting(setting)

    async def set_rate(
        self, db: AsyncSession, rate_bps: int, actor: Actor
    ) -> CommissionSettingResponse:
        """Replace the active rate. Existing settlements keep their snapshot."""
        if not actor.is_admin:
            raise AdminRequiredError()
        if not 0 <= rate_bps <= MAX_RATE_BPS:
            raise InvalidAmountError(f"rate_bps must be 0-{MAX_RATE_BPS}, got {rate_bps}")
        try:
            setting = await self._repo.replace_active(db, rate_bps, actor.id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Commission rate set to %d bps by %s", rate_bps, actor.id)
        return CommissionSettingResponse.from_setting(setting)
