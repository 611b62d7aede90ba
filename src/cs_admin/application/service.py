"""Admin application service: settlement queue, statistics, invariants, direct credits."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_admin.application.schemas import (
    DirectCreditResponse,
    InvariantReport,
    PendingListResponse,
    PendingSettlementItem,
    StatisticsResponse,
)
from src.cs_common.actor import Actor
from src.cs_common.datetime_utils import days_ago
from src.cs_common.enums import FlowState, LedgerStage
from src.cs_common.errors import AdminRequiredError, SettlementNotFoundError
from src.cs_common.minor_units import to_display
from src.cs_common.pagination import cursor_decode, cursor_encode, split_page
from src.cs_ledger.domain.repository import LedgerRepositoryProtocol
from src.cs_ledger.infrastructure.persistence import LedgerRepository
from src.cs_settlement.application.schemas import SettlementAdminView
from src.cs_settlement.domain.invariants import verify_global_invariants
from src.cs_settlement.domain.models import PendingSettlement
from src.cs_settlement.domain.repository import SettlementRepositoryProtocol
from src.cs_settlement.infrastructure.persistence import SettlementRepository

logger = logging.getLogger(__name__)


def current_action(pending: PendingSettlement) -> str:
    """What the admin queue should prompt for next on this settlement."""
    s = pending.settlement
    if s.is_refunded:
        return "none"
    if not s.advance_confirmed:
        return "confirm_advance"
    if not s.final_confirmed:
        if pending.flow_state == FlowState.WORK_APPROVED:
            return "confirm_final"
        return "awaiting_work"
    return "completed"


class AdminService:
    def __init__(
        self,
        settlements: SettlementRepositoryProtocol | None = None,
        ledger: LedgerRepositoryProtocol | None = None,
    ) -> None:
        self._settlements: SettlementRepositoryProtocol = settlements or SettlementRepository()
        self._ledger: LedgerRepositoryProtocol = ledger or LedgerRepository()

    async def get_settlement(self, db: AsyncSession, settlement_id: str) -> SettlementAdminView:
        record = await self._settlements.get(db, settlement_id)
        if record is None:
            raise SettlementNotFoundError(settlement_id)
        return SettlementAdminView.from_record(record)

    async def list_pending(
        self,
        db: AsyncSession,
        status_filter: str,
        cursor: str | None,
        limit: int,
    ) -> PendingListResponse:
        raw_cursor = cursor_decode(cursor)
        cursor_id = str(raw_cursor) if raw_cursor is not None else None
        rows = await self._settlements.list_pending(db, status_filter, cursor_id, limit + 1)
        page, has_more = split_page(rows, limit)
        next_cursor = cursor_encode(page[-1].settlement.id) if has_more and page else None
        return PendingListResponse(
            items=[
                PendingSettlementItem(
                    settlement=SettlementAdminView.from_record(p.settlement),
                    title=p.title,
                    flow_state=p.flow_state,
                    current_action=current_action(p),
                )
                for p in page
            ],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def statistics(self, db: AsyncSession, days: int) -> StatisticsResponse:
        stats = await self._settlements.statistics(db, days_ago(days))
        return StatisticsResponse.from_stats(days, stats)

    async def check_invariants(self, db: AsyncSession) -> InvariantReport:
        violations = await verify_global_invariants(db)
        if violations:
            logger.error("Invariant check found %d violation(s)", len(violations))
        return InvariantReport(ok=not violations, violations=violations)

    async def direct_credit(
        self,
        db: AsyncSession,
        payee_id: str,
        amount: int,
        idempotency_key: str,
        actor: Actor,
        description: str | None = None,
    ) -> DirectCreditResponse:
        """Credit a wallet outside any settlement. Idempotent on the caller's key."""
        if not actor.is_admin:
            raise AdminRequiredError()
        try:
            result = await self._ledger.credit(
                db,
                payee_id,
                amount,
                LedgerStage.DIRECT_PAYMENT.value,
                f"direct:{idempotency_key}",
                description=description or f"Direct payment by {actor.id}",
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if result.applied:
            logger.info("Direct credit: payee=%s amount=%d by=%s", payee_id, amount, actor.id)
        return DirectCreditResponse(
            entry_id=result.entry.id,
            payee_id=payee_id,
            amount=result.entry.amount,
            amount_display=to_display(result.entry.amount),
            applied=result.applied,
            balance=result.wallet.balance if result.wallet else None,
        )
