"""EscrowRepository: one hold per settlement, drawn down by cumulative releases.

Each mutation is a single conditional UPDATE ... RETURNING. The WHERE clause
carries the invariant `released + refunded <= amount`, so concurrent
releases cannot overdraw the hold. A result of 0 rows is an over-release:
it is logged at ERROR for manual reconciliation and raised, never absorbed.
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_common.errors import EscrowHoldNotFoundError, EscrowOverreleaseError, InternalError
from src.cs_common.id_generator import generate_id
from src.cs_common.minor_units import validate_amount
from src.cs_escrow.domain.models import EscrowHold

logger = logging.getLogger(__name__)

_HOLD_COLUMNS = """id, collaboration_id, settlement_id, payer_id, amount,
              released_amount, refunded_amount, status, created_at, closed_at"""

_CREATE_SQL = text(f"""
    INSERT INTO escrow_holds
        (id, collaboration_id, settlement_id, payer_id, amount, status)
    VALUES
        (:id, :collaboration_id, :settlement_id, :payer_id, :amount, 'held')
    RETURNING {_HOLD_COLUMNS}
""")

_RELEASE_SQL = text(f"""
    UPDATE escrow_holds
    SET released_amount = released_amount + :amount,
        status = CASE
            WHEN released_amount + refunded_amount + :amount = amount THEN 'released'
            ELSE 'held'
        END,
        closed_at = CASE
            WHEN released_amount + refunded_amount + :amount = amount THEN NOW()
            ELSE NULL
        END
    WHERE id = :hold_id
      AND status = 'held'
      AND released_amount + refunded_amount + :amount <= amount
    RETURNING {_HOLD_COLUMNS}
""")

_REFUND_SQL = text(f"""
    UPDATE escrow_holds
    SET refunded_amount = amount - released_amount,
        status = 'refunded',
        closed_at = NOW()
    WHERE id = :hold_id AND status = 'held'
    RETURNING {_HOLD_COLUMNS}
""")

_GET_SQL = text(f"""
    SELECT {_HOLD_COLUMNS}
    FROM escrow_holds
    WHERE id = :hold_id
""")


def _row_to_hold(row: object) -> EscrowHold:
    return EscrowHold(
        id=row.id,  # type: ignore[attr-defined]
        collaboration_id=row.collaboration_id,  # type: ignore[attr-defined]
        settlement_id=row.settlement_id,  # type: ignore[attr-defined]
        payer_id=row.payer_id,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        released_amount=row.released_amount,  # type: ignore[attr-defined]
        refunded_amount=row.refunded_amount,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        closed_at=row.closed_at,  # type: ignore[attr-defined]
    )


class EscrowRepository:
    async def create(
        self,
        db: AsyncSession,
        collaboration_id: str,
        settlement_id: str,
        payer_id: str,
        amount: int,
    ) -> EscrowHold:
        validate_amount(amount)
        result = await db.execute(
            _CREATE_SQL,
            {
                "id": generate_id(),
                "collaboration_id": collaboration_id,
                "settlement_id": settlement_id,
                "payer_id": payer_id,
                "amount": amount,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("escrow_holds insert returned no rows")
        return _row_to_hold(row)

    async def release(self, db: AsyncSession, hold_id: str, amount: int) -> EscrowHold:
        validate_amount(amount)
        result = await db.execute(_RELEASE_SQL, {"hold_id": hold_id, "amount": amount})
        row = result.fetchone()
        if row is None:
            hold = await self._require(db, hold_id)
            logger.error(
                "Escrow over-release rejected: hold=%s status=%s requested=%d remaining=%d",
                hold_id, hold.status, amount, hold.remaining,
            )
            raise EscrowOverreleaseError(hold_id, amount, hold.remaining)
        return _row_to_hold(row)

    async def refund(self, db: AsyncSession, hold_id: str) -> tuple[EscrowHold, int]:
        """Return the whole remaining amount to the payer side.

        Returns (hold, refunded_now).
        """
        result = await db.execute(_REFUND_SQL, {"hold_id": hold_id})
        row = result.fetchone()
        if row is None:
            hold = await self._require(db, hold_id)
            logger.error(
                "Escrow refund rejected: hold=%s status=%s remaining=%d",
                hold_id, hold.status, hold.remaining,
            )
            raise EscrowOverreleaseError(hold_id, hold.remaining, 0)
        hold = _row_to_hold(row)
        return hold, hold.refunded_amount

    async def get(self, db: AsyncSession, hold_id: str) -> EscrowHold | None:
        result = await db.execute(_GET_SQL, {"hold_id": hold_id})
        row = result.fetchone()
        return _row_to_hold(row) if row else None

    async def _require(self, db: AsyncSession, hold_id: str) -> EscrowHold:
        hold = await self.get(db, hold_id)
        if hold is None:
            raise EscrowHoldNotFoundError(hold_id)
        return hold
