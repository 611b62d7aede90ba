from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_escrow.domain.models import EscrowHold


class EscrowRepositoryProtocol(Protocol):
    async def create(
        self,
        db: AsyncSession,
        collaboration_id: str,
        settlement_id: str,
        payer_id: str,
        amount: int,
    ) -> EscrowHold: ...

    async def release(self, db: AsyncSession, hold_id: str, amount: int) -> EscrowHold: ...

    async def refund(self, db: AsyncSession, hold_id: str) -> tuple[EscrowHold, int]: ...

    async def get(self, db: AsyncSession, hold_id: str) -> EscrowHold | None: ...
