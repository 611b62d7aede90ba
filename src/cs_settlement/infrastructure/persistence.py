"""SettlementRepository: raw SQL over the settlements table.

Status changes are compare-and-swap UPDATEs: the WHERE clause carries the
expected current status and a result of 0 rows means another request got
there first. The caller decides which error that maps to.
"""

from datetime import datetime

from sqlalchemy import TextClause, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_common.errors import InternalError
from src.cs_settlement.domain.models import PendingSettlement, SettlementRecord, SettlementStats

_COLUMNS = """id, collaboration_id, payer_id, payee_id, total_amount, commission_rate_bps,
              commission_amount, net_amount, advance_amount, final_amount,
              advance_status, final_status, advance_entry_id, final_entry_id, escrow_hold_id,
              advance_evidence_ref, advance_confirm_key, advance_confirmed_at, advance_confirmed_by,
              final_evidence_ref, final_confirm_key, final_confirmed_at, final_confirmed_by,
              refund_reason, refunded_amount, refunded_at, refunded_by, created_at"""

_INSERT_SQL = text(f"""
    INSERT INTO settlements
        (id, collaboration_id, payer_id, payee_id, total_amount, commission_rate_bps,
         commission_amount, net_amount, advance_amount, final_amount,
         advance_status, final_status)
    VALUES
        (:id, :collaboration_id, :payer_id, :payee_id, :total_amount, :commission_rate_bps,
         :commission_amount, :net_amount, :advance_amount, :final_amount,
         'awaiting_admin', 'pending')
    ON CONFLICT (collaboration_id) DO NOTHING
    RETURNING {_COLUMNS}
""")

_ATTACH_FUNDS_SQL = text(f"""
    UPDATE settlements
    SET advance_entry_id = :advance_entry_id,
        final_entry_id = :final_entry_id,
        escrow_hold_id = :escrow_hold_id
    WHERE id = :settlement_id
    RETURNING {_COLUMNS}
""")

_CONFIRM_ADVANCE_SQL = text(f"""
    UPDATE settlements
    SET advance_status = 'confirmed',
        advance_evidence_ref = :evidence_ref,
        advance_confirm_key = :confirm_key,
        advance_confirmed_at = NOW(),
        advance_confirmed_by = :confirmed_by
    WHERE id = :settlement_id
      AND advance_status = 'awaiting_admin'
      AND refunded_at IS NULL
    RETURNING {_COLUMNS}
""")

_CONFIRM_FINAL_SQL = text(f"""
    UPDATE settlements
    SET final_status = 'confirmed',
        final_evidence_ref = :evidence_ref,
        final_confirm_key = :confirm_key,
        final_confirmed_at = NOW(),
        final_confirmed_by = :confirmed_by
    WHERE id = :settlement_id
      AND advance_status = 'confirmed'
      AND final_status = 'pending'
      AND refunded_at IS NULL
    RETURNING {_COLUMNS}
""")

_MARK_REFUNDED_SQL = text(f"""
    UPDATE settlements
    SET refund_reason = :reason,
        refunded_amount = :refunded_amount,
        refunded_at = NOW(),
        refunded_by = :refunded_by
    WHERE id = :settlement_id
      AND final_status = 'pending'
      AND refunded_at IS NULL
    RETURNING {_COLUMNS}
""")

_GET_SQL = text(f"SELECT {_COLUMNS} FROM settlements WHERE id = :settlement_id")

_GET_BY_COLLABORATION_SQL = text(
    f"SELECT {_COLUMNS} FROM settlements WHERE collaboration_id = :collaboration_id"
)

_PENDING_FILTERS = {
    "advance_pending": "s.advance_status = 'awaiting_admin'",
    "final_pending": "s.advance_status = 'confirmed' AND s.final_status = 'pending'",
    "all": "s.final_status = 'pending'",
}

_STATS_SQL = text("""
    SELECT
        COUNT(*) AS total_settlements,
        COALESCE(SUM(total_amount), 0) AS total_volume,
        COALESCE(SUM(commission_amount), 0) AS total_commission,
        COALESCE(SUM(advance_amount) FILTER (WHERE advance_status = 'confirmed'), 0)
            AS advance_released,
        COALESCE(SUM(final_amount) FILTER (WHERE final_status = 'confirmed'), 0)
            AS final_released,
        COALESCE(SUM(refunded_amount), 0) AS refunded_volume,
        COUNT(*) FILTER (
            WHERE advance_status = 'awaiting_admin' AND refunded_at IS NULL
        ) AS advance_pending_count,
        COUNT(*) FILTER (
            WHERE advance_status = 'confirmed' AND final_status = 'pending'
              AND refunded_at IS NULL
        ) AS final_pending_count,
        COUNT(*) FILTER (WHERE final_status = 'confirmed') AS closed_count,
        COUNT(*) FILTER (WHERE refunded_at IS NOT NULL) AS refunded_count
    FROM settlements
    WHERE created_at >= :since
""")


_PREFIXED_COLUMNS = ", ".join(f"s.{c.strip()}" for c in _COLUMNS.split(","))


def _build_pending_sql(condition: str) -> TextClause:
    return text(f"""
        SELECT {_PREFIXED_COLUMNS}, c.flow_state, c.title
        FROM settlements s
        JOIN collaborations c ON c.id = s.collaboration_id
        WHERE {condition}
          AND s.refunded_at IS NULL
          AND (CAST(:cursor_id AS TEXT) IS NULL
               OR CAST(s.id AS BIGINT) < CAST(:cursor_id AS BIGINT))
        ORDER BY CAST(s.id AS BIGINT) DESC
        LIMIT :limit
    """)


_PENDING_SQL = {name: _build_pending_sql(cond) for name, cond in _PENDING_FILTERS.items()}


def _row_to_record(row: object) -> SettlementRecord:
    return SettlementRecord(
        id=row.id,  # type: ignore[attr-defined]
        collaboration_id=row.collaboration_id,  # type: ignore[attr-defined]
        payer_id=row.payer_id,  # type: ignore[attr-defined]
        payee_id=row.payee_id,  # type: ignore[attr-defined]
        total_amount=row.total_amount,  # type: ignore[attr-defined]
        commission_rate_bps=row.commission_rate_bps,  # type: ignore[attr-defined]
        commission_amount=row.commission_amount,  # type: ignore[attr-defined]
        net_amount=row.net_amount,  # type: ignore[attr-defined]
        advance_amount=row.advance_amount,  # type: ignore[attr-defined]
        final_amount=row.final_amount,  # type: ignore[attr-defined]
        advance_status=row.advance_status,  # type: ignore[attr-defined]
        final_status=row.final_status,  # type: ignore[attr-defined]
        advance_entry_id=row.advance_entry_id,  # type: ignore[attr-defined]
        final_entry_id=row.final_entry_id,  # type: ignore[attr-defined]
        escrow_hold_id=row.escrow_hold_id,  # type: ignore[attr-defined]
        advance_evidence_ref=row.advance_evidence_ref,  # type: ignore[attr-defined]
        advance_confirm_key=row.advance_confirm_key,  # type: ignore[attr-defined]
        advance_confirmed_at=row.advance_confirmed_at,  # type: ignore[attr-defined]
        advance_confirmed_by=row.advance_confirmed_by,  # type: ignore[attr-defined]
        final_evidence_ref=row.final_evidence_ref,  # type: ignore[attr-defined]
        final_confirm_key=row.final_confirm_key,  # type: ignore[attr-defined]
        final_confirmed_at=row.final_confirmed_at,  # type: ignore[attr-defined]
        final_confirmed_by=row.final_confirmed_by,  # type: ignore[attr-defined]
        refund_reason=row.refund_reason,  # type: ignore[attr-defined]
        refunded_amount=row.refunded_amount,  # type: ignore[attr-defined]
        refunded_at=row.refunded_at,  # type: ignore[attr-defined]
        refunded_by=row.refunded_by,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class SettlementRepository:
    async def insert(self, db: AsyncSession, record: SettlementRecord) -> SettlementRecord | None:
        """Returns None when the collaboration already has a settlement."""
        result = await db.execute(
            _INSERT_SQL,
            {
                "id": record.id,
                "collaboration_id": record.collaboration_id,
                "payer_id": record.payer_id,
                "payee_id": record.payee_id,
                "total_amount": record.total_amount,
                "commission_rate_bps": record.commission_rate_bps,
                "commission_amount": record.commission_amount,
                "net_amount": record.net_amount,
                "advance_amount": record.advance_amount,
                "final_amount": record.final_amount,
            },
        )
        row = result.fetchone()
        return _row_to_record(row) if row else None

    async def attach_funds(
        self,
        db: AsyncSession,
        settlement_id: str,
        advance_entry_id: int | None,
        final_entry_id: int | None,
        escrow_hold_id: str,
    ) -> SettlementRecord:
        result = await db.execute(
            _ATTACH_FUNDS_SQL,
            {
                "settlement_id": settlement_id,
                "advance_entry_id": advance_entry_id,
                "final_entry_id": final_entry_id,
                "escrow_hold_id": escrow_hold_id,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError(f"Settlement {settlement_id} vanished while attaching funds")
        return _row_to_record(row)

    async def mark_advance_confirmed(
        self,
        db: AsyncSession,
        settlement_id: str,
        evidence_ref: str | None,
        confirm_key: str | None,
        confirmed_by: str,
    ) -> SettlementRecord | None:
        result = await db.execute(
            _CONFIRM_ADVANCE_SQL,
            {
                "settlement_id": settlement_id,
                "evidence_ref": evidence_ref,
                "confirm_key": confirm_key,
                "confirmed_by": confirmed_by,
            },
        )
        row = result.fetchone()
        return _row_to_record(row) if row else None

    async def mark_final_confirmed(
        self,
        db: AsyncSession,
        settlement_id: str,
        evidence_ref: str | None,
        confirm_key: str | None,
        confirmed_by: str,
    ) -> SettlementRecord | None:
        result = await db.execute(
            _CONFIRM_FINAL_SQL,
            {
                "settlement_id": settlement_id,
                "evidence_ref": evidence_ref,
                "confirm_key": confirm_key,
                "confirmed_by": confirmed_by,
            },
        )
        row = result.fetchone()
        return _row_to_record(row) if row else None

    async def mark_refunded(
        self,
        db: AsyncSession,
        settlement_id: str,
        reason: str,
        refunded_amount: int,
        refunded_by: str,
    ) -> SettlementRecord | None:
        result = await db.execute(
            _MARK_REFUNDED_SQL,
            {
                "settlement_id": settlement_id,
                "reason": reason,
                "refunded_amount": refunded_amount,
                "refunded_by": refunded_by,
            },
        )
        row = result.fetchone()
        return _row_to_record(row) if row else None

    async def get(self, db: AsyncSession, settlement_id: str) -> SettlementRecord | None:
        result = await db.execute(_GET_SQL, {"settlement_id": settlement_id})
        row = result.fetchone()
        return _row_to_record(row) if row else None

    async def get_by_collaboration(
        self, db: AsyncSession, collaboration_id: str
    ) -> SettlementRecord | None:
        result = await db.execute(
            _GET_BY_COLLABORATION_SQL, {"collaboration_id": collaboration_id}
        )
        row = result.fetchone()
        return _row_to_record(row) if row else None

    async def list_pending(
        self,
        db: AsyncSession,
        status_filter: str,
        cursor_id: str | None,
        limit: int,
    ) -> list[PendingSettlement]:
        result = await db.execute(
            _PENDING_SQL[status_filter], {"cursor_id": cursor_id, "limit": limit}
        )
        return [
            PendingSettlement(
                settlement=_row_to_record(row),
                flow_state=row.flow_state,
                title=row.title,
            )
            for row in result.fetchall()
        ]

    async def statistics(self, db: AsyncSession, since: datetime) -> SettlementStats:
        result = await db.execute(_STATS_SQL, {"since": since})
        row = result.fetchone()
        if row is None:
            return SettlementStats()
        return SettlementStats(
            total_settlements=row.total_settlements,
            total_volume=row.total_volume,
            total_commission=row.total_commission,
            advance_released=row.advance_released,
            final_released=row.final_released,
            refunded_volume=row.refunded_volume,
            advance_pending_count=row.advance_pending_count,
            final_pending_count=row.final_pending_count,
            closed_count=row.closed_count,
            refunded_count=row.refunded_count,
        )
