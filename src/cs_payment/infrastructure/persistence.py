"""PaymentRepository: duplicate-payment protection lives in the UNIQUE index
on payments.external_payment_id. insert() returns None when the id exists."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_payment.domain.models import PaymentRecord

_COLUMNS = "id, collaboration_id, external_order_id, external_payment_id, verified_amount, created_at"

_INSERT_SQL = text(f"""
    INSERT INTO payments
        (id, collaboration_id, external_order_id, external_payment_id, verified_amount)
    VALUES
        (:id, :collaboration_id, :external_order_id, :external_payment_id, :verified_amount)
    ON CONFLICT (external_payment_id) DO NOTHING
    RETURNING {_COLUMNS}
""")

_GET_BY_EXTERNAL_ID_SQL = text(
    f"SELECT {_COLUMNS} FROM payments WHERE external_payment_id = :external_payment_id"
)

_GET_BY_COLLABORATION_SQL = text(f"""
    SELECT {_COLUMNS} FROM payments
    WHERE collaboration_id = :collaboration_id
    ORDER BY created_at ASC
    LIMIT 1
""")


def _row_to_payment(row: object) -> PaymentRecord:
    return PaymentRecord(
        id=row.id,  # type: ignore[attr-defined]
        collaboration_id=row.collaboration_id,  # type: ignore[attr-defined]
        external_order_id=row.external_order_id,  # type: ignore[attr-defined]
        external_payment_id=row.external_payment_id,  # type: ignore[attr-defined]
        verified_amount=row.verified_amount,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class PaymentRepository:
    async def insert(self, db: AsyncSession, record: PaymentRecord) -> PaymentRecord | None:
        result = await db.execute(
            _INSERT_SQL,
            {
                "id": record.id,
                "collaboration_id": record.collaboration_id,
                "external_order_id": record.external_order_id,
                "external_payment_id": record.external_payment_id,
                "verified_amount": record.verified_amount,
            },
        )
        row = result.fetchone()
        return _row_to_payment(row) if row else None

    async def get_by_external_payment_id(
        self, db: AsyncSession, external_payment_id: str
    ) -> PaymentRecord | None:
        result = await db.execute(
            _GET_BY_EXTERNAL_ID_SQL, {"external_payment_id": external_payment_id}
        )
        row = result.fetchone()
        return _row_to_payment(row) if row else None

    async def get_by_collaboration(
        self, db: AsyncSession, collaboration_id: str
    ) -> PaymentRecord | None:
        result = await db.execute(
            _GET_BY_COLLABORATION_SQL, {"collaboration_id": collaboration_id}
        )
        row = result.fetchone()
        return _row_to_payment(row) if row else None
