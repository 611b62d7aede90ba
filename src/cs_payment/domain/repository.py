from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_payment.domain.models import PaymentRecord


class PaymentRepositoryProtocol(Protocol):
    async def insert(self, db: AsyncSession, record: PaymentRecord) -> PaymentRecord | None: ...

    async def get_by_external_payment_id(
        self, db: AsyncSession, external_payment_id: str
    ) -> PaymentRecord | None: ...

    async def get_by_collaboration(
        self, db: AsyncSession, collaboration_id: str
    ) -> PaymentRecord | None: ...
