"""Repository Protocol for the ledger store.

Unit tests inject a mock or an in-memory fake conforming to this Protocol.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_ledger.domain.models import CreditResult, LedgerEntry, Wallet


class LedgerRepositoryProtocol(Protocol):
    async def credit(
        self,
        db: AsyncSession,
        payee_id: str,
        amount: int,
        stage: str,
        idempotency_key: str,
        settlement_id: str | None = None,
        description: str | None = None,
    ) -> CreditResult: ...

    async def reserve(
        self,
        db: AsyncSession,
        payee_id: str,
        amount: int,
        stage: str,
        idempotency_key: str,
        settlement_id: str | None = None,
        description: str | None = None,
    ) -> LedgerEntry: ...

    async def confirm(self, db: AsyncSession, entry_id: int) -> tuple[LedgerEntry, Wallet]: ...

    async def cancel_pending(self, db: AsyncSession, settlement_id: str) -> list[int]: ...

    async def get_entry(self, db: AsyncSession, entry_id: int) -> LedgerEntry | None: ...

    async def get_wallet(self, db: AsyncSession, payee_id: str) -> Wallet | None: ...

    async def list_entries(
        self,
        db: AsyncSession,
        payee_id: str,
        cursor_id: int | None,
        limit: int,
        stage: str | None,
    ) -> list[LedgerEntry]: ...
