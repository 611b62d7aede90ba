"""PaymentIntakeService: entry point for the payment verifier callback.

Order of checks:
    signature -> owning collaboration -> duplicate payment id -> amount
    -> dispatch PaymentVerified (which opens the settlement)

The duplicate lookup here is a fast path that gives a clear answer on a
plain retry. The UNIQUE index on payments.external_payment_id, hit inside
SettlementTracker.open(), is what makes concurrent duplicates safe.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.cs_common.actor import Actor
from src.cs_common.errors import (
    AmountMismatchError,
    CollaborationNotFoundError,
    DuplicatePaymentError,
    PaymentVerificationError,
)
from src.cs_flow.application.service import FlowService
from src.cs_flow.domain.actions import PaymentVerified
from src.cs_flow.domain.repository import CollaborationRepositoryProtocol
from src.cs_flow.infrastructure.persistence import CollaborationRepository
from src.cs_payment.application.schemas import PaymentAcceptedResponse
from src.cs_payment.domain.models import PaymentNotice
from src.cs_payment.domain.repository import PaymentRepositoryProtocol
from src.cs_payment.domain.verifier import HmacPaymentVerifier, PaymentVerifierProtocol
from src.cs_payment.infrastructure.persistence import PaymentRepository

logger = logging.getLogger(__name__)


class PaymentIntakeService:
    def __init__(
        self,
        verifier: PaymentVerifierProtocol | None = None,
        payments: PaymentRepositoryProtocol | None = None,
        collaborations: CollaborationRepositoryProtocol | None = None,
        flow: FlowService | None = None,
    ) -> None:
        self._verifier: PaymentVerifierProtocol = verifier or HmacPaymentVerifier(
            settings.PAYMENT_VERIFIER_SECRET
        )
        self._payments: PaymentRepositoryProtocol = payments or PaymentRepository()
        self._collaborations: CollaborationRepositoryProtocol = (
            collaborations or CollaborationRepository()
        )
        self._flow = flow or FlowService()

    async def handle_verified_payment(
        self, db: AsyncSession, notice: PaymentNotice
    ) -> PaymentAcceptedResponse:
        if not self._verifier.verify(notice):
            logger.warning(
                "Payment signature rejected: order=%s payment=%s",
                notice.external_order_id, notice.external_payment_id,
            )
            raise PaymentVerificationError()

        collab = await self._collaborations.get_by_external_order_id(db, notice.external_order_id)
        if collab is None:
            raise CollaborationNotFoundError(f"order {notice.external_order_id}")

        if await self._payments.get_by_external_payment_id(db, notice.external_payment_id):
            logger.info("Duplicate payment notice ignored: %s", notice.external_payment_id)
            raise DuplicatePaymentError(notice.external_payment_id)

        if collab.agreed_amount != notice.verified_amount:
            raise AmountMismatchError(collab.agreed_amount or 0, notice.verified_amount)

        result = await self._flow.dispatch(
            db,
            collab.id,
            Actor.system(),
            PaymentVerified(
                external_order_id=notice.external_order_id,
                external_payment_id=notice.external_payment_id,
                verified_amount=notice.verified_amount,
            ),
        )
        return PaymentAcceptedResponse(
            external_payment_id=notice.external_payment_id,
            collaboration_id=collab.id,
            settlement_id=result.breakdown.settlement_id if result.breakdown else None,
            result=result,
        )
