"""LedgerApplicationService: read side of the wallet for its owner.

Mutations (credit / reserve / confirm) are driven by the settlement workflow
and the admin surface inside their own transactions.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_common.pagination import cursor_decode, cursor_encode, split_page
from src.cs_ledger.application.schemas import LedgerEntryItem, LedgerResponse, WalletResponse
from src.cs_ledger.domain.repository import LedgerRepositoryProtocol
from src.cs_ledger.infrastructure.persistence import LedgerRepository


class LedgerApplicationService:
    def __init__(self, repo: LedgerRepositoryProtocol | None = None) -> None:
        self._repo: LedgerRepositoryProtocol = repo or LedgerRepository()

    async def get_wallet(self, db: AsyncSession, payee_id: str) -> WalletResponse:
        wallet = await self._repo.get_wallet(db, payee_id)
        # A payee without any completed entry simply has a zero balance
        return WalletResponse.from_balance(payee_id, wallet.balance if wallet else 0)

    async def list_ledger(
        self,
        db: AsyncSession,
        payee_id: str,
        cursor: str | None,
        limit: int,
        stage: str | None,
    ) -> LedgerResponse:
        raw_cursor = cursor_decode(cursor)
        cursor_id = raw_cursor if isinstance(raw_cursor, int) else None
        entries = await self._repo.list_entries(db, payee_id, cursor_id, limit + 1, stage)
        page, has_more = split_page(entries, limit)
        next_cursor = cursor_encode(page[-1].id) if has_more and page else None
        return LedgerResponse(
            items=[LedgerEntryItem.from_entry(e) for e in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )
