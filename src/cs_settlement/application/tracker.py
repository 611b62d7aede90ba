"""SettlementTracker: turns a verified payment into a funded settlement.

open() performs, inside the CALLER's transaction:
    1. resolve the active commission rate (nothing written if missing)
    2. compute the breakdown
    3. record the payment (UNIQUE external_payment_id)
    4. insert the SettlementRecord (UNIQUE per collaboration)
    5. reserve pending advance and final ledger entries
    6. create the escrow hold for the total
    7. credit the commission to the platform wallet and release it from escrow
    8. verify the record's invariants

A storage failure in steps 3-7 is reported as PartialWriteFailureError; the
caller rolls the transaction back so no partial settlement is ever visible.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_commission.application.service import CommissionSettingsService
from src.cs_commission.domain.calculator import calculate_breakdown
from src.cs_common.datetime_utils import iso_or_none
from src.cs_common.enums import LedgerStage
from src.cs_common.errors import (
    DuplicatePaymentError,
    InternalError,
    InvalidAmountError,
    InvalidStateTransitionError,
    PartialWriteFailureError,
    SettlementNotFoundError,
)
from src.cs_common.id_generator import generate_id
from src.cs_common.minor_units import to_display
from src.cs_escrow.domain.repository import EscrowRepositoryProtocol
from src.cs_escrow.infrastructure.persistence import EscrowRepository
from src.cs_flow.domain.actions import PaymentVerified
from src.cs_flow.domain.models import Collaboration
from src.cs_ledger.domain.constants import PLATFORM_COMMISSION_WALLET
from src.cs_ledger.domain.repository import LedgerRepositoryProtocol
from src.cs_ledger.infrastructure.persistence import LedgerRepository
from src.cs_payment.domain.models import PaymentRecord
from src.cs_payment.domain.repository import PaymentRepositoryProtocol
from src.cs_payment.infrastructure.persistence import PaymentRepository
from src.cs_settlement.application.schemas import (
    BreakdownResponse,
    TimelineItem,
    TimelineResponse,
)
from src.cs_settlement.domain.invariants import check_breakdown
from src.cs_settlement.domain.models import SettlementRecord
from src.cs_settlement.domain.repository import SettlementRepositoryProtocol
from src.cs_settlement.infrastructure.persistence import SettlementRepository

logger = logging.getLogger(__name__)


class SettlementTracker:
    def __init__(
        self,
        settlements: SettlementRepositoryProtocol | None = None,
        ledger: LedgerRepositoryProtocol | None = None,
        escrow: EscrowRepositoryProtocol | None = None,
        payments: PaymentRepositoryProtocol | None = None,
        commission: CommissionSettingsService | None = None,
    ) -> None:
        self._settlements: SettlementRepositoryProtocol = settlements or SettlementRepository()
        self._ledger: LedgerRepositoryProtocol = ledger or LedgerRepository()
        self._escrow: EscrowRepositoryProtocol = escrow or EscrowRepository()
        self._payments: PaymentRepositoryProtocol = payments or PaymentRepository()
        self._commission = commission or CommissionSettingsService()

    async def open(
        self, db: AsyncSession, collab: Collaboration, payment: PaymentVerified
    ) -> SettlementRecord:
        rate_bps = await self._commission.get_active_rate(db)
        try:
            breakdown = calculate_breakdown(payment.verified_amount, rate_bps)
        except ValueError as exc:
            raise InvalidAmountError(str(exc)) from exc

        settlement_id = generate_id()
        step = "payment"
        try:
            recorded = await self._payments.insert(
                db,
                PaymentRecord(
                    id=generate_id(),
                    collaboration_id=collab.id,
                    external_order_id=payment.external_order_id,
                    external_payment_id=payment.external_payment_id,
                    verified_amount=payment.verified_amount,
                ),
            )
            if recorded is None:
                raise DuplicatePaymentError(payment.external_payment_id)

            step = "settlement"
            record = await self._settlements.insert(
                db,
                SettlementRecord(
                    id=settlement_id,
                    collaboration_id=collab.id,
                    payer_id=collab.payer_id,
                    payee_id=collab.payee_id,
                    total_amount=breakdown.total_amount,
                    commission_rate_bps=breakdown.commission_rate_bps,
                    commission_amount=breakdown.commission_amount,
                    net_amount=breakdown.net_amount,
                    advance_amount=breakdown.advance_amount,
                    final_amount=breakdown.final_amount,
                ),
            )
            if record is None:
                # another payment for this collaboration committed first
                raise InvalidStateTransitionError(PaymentVerified.name, "settlement already open")

            step = "ledger"
            advance_entry_id = await self._reserve(
                db, record, LedgerStage.ADVANCE, record.advance_amount
            )
            final_entry_id = await self._reserve(
                db, record, LedgerStage.FINAL, record.final_amount
            )

            step = "escrow"
            hold = await self._escrow.create(
                db, collab.id, record.id, collab.payer_id, record.total_amount
            )

            step = "commission"
            if record.commission_amount > 0:
                await self._ledger.credit(
                    db,
                    PLATFORM_COMMISSION_WALLET,
                    record.commission_amount,
                    LedgerStage.COMMISSION.value,
                    f"commission:{record.id}",
                    settlement_id=record.id,
                    description=f"Commission on collaboration {collab.id}",
                )
                await self._escrow.release(db, hold.id, record.commission_amount)

            step = "settlement"
            record = await self._settlements.attach_funds(
                db, record.id, advance_entry_id, final_entry_id, hold.id
            )
        except SQLAlchemyError as exc:
            logger.error(
                "Settlement open failed at step=%s collaboration=%s payment=%s",
                step, collab.id, payment.external_payment_id, exc_info=True,
            )
            raise PartialWriteFailureError(step) from exc

        violations = check_breakdown(record)
        if violations:
            for msg in violations:
                logger.error(msg)
            raise InternalError(f"Settlement {record.id} failed invariant checks")

        logger.info(
            "Settlement opened: id=%s collaboration=%s total=%d commission=%d advance=%d final=%d",
            record.id, collab.id, record.total_amount, record.commission_amount,
            record.advance_amount, record.final_amount,
        )
        return record

    async def _reserve(
        self, db: AsyncSession, record: SettlementRecord, stage: LedgerStage, amount: int
    ) -> int | None:
        # a zero share (tiny totals, or a 100% rate) gets no placeholder entry
        if amount == 0:
            return None
        entry = await self._ledger.reserve(
            db,
            record.payee_id,
            amount,
            stage.value,
            f"{stage.value}:{record.id}",
            settlement_id=record.id,
            description=f"{stage.value.capitalize()} payout for collaboration {record.collaboration_id}",
        )
        return entry.id

    async def require(self, db: AsyncSession, collaboration_id: str) -> SettlementRecord:
        record = await self._settlements.get_by_collaboration(db, collaboration_id)
        if record is None:
            raise SettlementNotFoundError(f"collaboration {collaboration_id}")
        return record

    async def get_breakdown(self, db: AsyncSession, collaboration_id: str) -> BreakdownResponse:
        return BreakdownResponse.from_record(await self.require(db, collaboration_id))

    async def get_timeline(self, db: AsyncSession, collaboration_id: str) -> TimelineResponse:
        record = await self.require(db, collaboration_id)
        items = [
            TimelineItem(
                event="payment_received",
                at=iso_or_none(record.created_at),
                amount=record.total_amount,
                amount_display=to_display(record.total_amount),
            )
        ]
        if record.advance_confirmed:
            items.append(TimelineItem(
                event="advance_released",
                at=iso_or_none(record.advance_confirmed_at),
                amount=record.advance_amount,
                amount_display=to_display(record.advance_amount),
                by=record.advance_confirmed_by,
            ))
        if record.final_confirmed:
            items.append(TimelineItem(
                event="final_released",
                at=iso_or_none(record.final_confirmed_at),
                amount=record.final_amount,
                amount_display=to_display(record.final_amount),
                by=record.final_confirmed_by,
            ))
        if record.is_refunded:
            refunded = record.refunded_amount or 0
            items.append(TimelineItem(
                event="refunded",
                at=iso_or_none(record.refunded_at),
                amount=refunded,
                amount_display=to_display(refunded),
                by=record.refunded_by,
            ))
        return TimelineResponse(
            collaboration_id=collaboration_id, settlement_id=record.id, items=items
        )
