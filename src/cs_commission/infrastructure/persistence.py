"""CommissionRepository: raw SQL over commission_settings.

At most one row is active at a time (partial unique index). Replacing the
rate deactivates the current row and inserts a new one; the caller owns the
transaction so both statements commit together.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_commission.domain.models import CommissionSetting
from src.cs_common.errors import InternalError

_GET_ACTIVE_SQL = text("""
    SELECT id, rate_bps, is_active, effective_from, created_by, created_at
    FROM commission_settings
    WHERE is_active = TRUE AND effective_from <= NOW()
    ORDER BY effective_from DESC, id DESC
    LIMIT 1
""")

_DEACTIVATE_SQL = text("""
    UPDATE commission_settings
    SET is_active = FALSE
    WHERE is_active = TRUE
""")

_INSERT_SQL = text("""
    INSERT INTO commission_settings (rate_bps, is_active, effective_from, created_by)
    VALUES (:rate_bps, TRUE, NOW(), :created_by)
    RETURNING id, rate_bps, is_active, effective_from, created_by, created_at
""")


def _row_to_setting(row: object) -> CommissionSetting:
    return CommissionSetting(
        id=row.id,  # type: ignore[attr-defined]
        rate_bps=row.rate_bps,  # type: ignore[attr-defined]
        is_active=row.is_active,  # type: ignore[attr-defined]
        effective_from=row.effective_from,  # type: ignore[attr-defined]
        created_by=row.created_by,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class CommissionRepository:
    async def get_active(self, db: AsyncSession) -> CommissionSetting | None:
        result = await db.execute(_GET_ACTIVE_SQL)
        row = result.fetchone()
        return _row_to_setting(row) if row else None

    async def replace_active(
        self, db: AsyncSession, rate_bps: int, created_by: str
    ) -> CommissionSetting:
        await db.execute(_DEACTIVATE_SQL)
        result = await db.execute(
            _INSERT_SQL, {"rate_bps": rate_bps, "created_by": created_by}
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("commission_settings insert returned no rows")
        return _row_to_setting(row)
