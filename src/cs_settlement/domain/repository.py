from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_settlement.domain.models import PendingSettlement, SettlementRecord, SettlementStats


class SettlementRepositoryProtocol(Protocol):
    async def insert(self, db: AsyncSession, record: SettlementRecord) -> SettlementRecord | None: ...

    async def attach_funds(
        self,
        db: AsyncSession,
        settlement_id: str,
        advance_entry_id: int | None,
        final_entry_id: int | None,
        escrow_hold_id: str,
    ) -> SettlementRecord: ...

    async def mark_advance_confirmed(
        self,
        db: AsyncSession,
        settlement_id: str,
        evidence_ref: str | None,
        confirm_key: str | None,
        confirmed_by: str,
    ) -> SettlementRecord | None: ...

    async def mark_final_confirmed(
        self,
        db: AsyncSession,
        settlement_id: str,
        evidence_ref: str | None,
        confirm_key: str | None,
        confirmed_by: str,
    ) -> SettlementRecord | None: ...

    async def mark_refunded(
        self,
        db: AsyncSession,
        settlement_id: str,
        reason: str,
        refunded_amount: int,
        refunded_by: str,
    ) -> SettlementRecord | None: ...

    async def get(self, db: AsyncSession, settlement_id: str) -> SettlementRecord | None: ...

    async def get_by_collaboration(
        self, db: AsyncSession, collaboration_id: str
    ) -> SettlementRecord | None: ...

    async def list_pending(
        self,
        db: AsyncSession,
        status_filter: str,
        cursor_id: str | None,
        limit: int,
    ) -> list[PendingSettlement]: ...

    async def statistics(self, db: AsyncSession, since: datetime) -> SettlementStats: ...
