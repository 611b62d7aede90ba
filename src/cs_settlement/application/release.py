"""AdminReleaseWorkflow: the admin-gated money movements of a settlement.

release_advance / release_final:
    CAS the settlement status (records evidence, key, actor, timestamp)
    -> ledger confirm() of the placeholder entry (wallet increment)
    -> escrow release() of the share

refund:
    escrow refund() of whatever is still held (skipped when nothing remains)
    -> credit the payer wallet (stage=refund, key=refund:{settlement_id})
    -> cancel the remaining pending placeholders
    -> stamp the refund fields

Re-presenting the idempotency key that performed a confirmation is a safe
retry: the current state is returned and nothing is written. Any other
second confirmation raises AlreadyConfirmedError. All steps run inside the
caller's transaction.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_common.actor import Actor
from src.cs_common.enums import LedgerStage
from src.cs_common.errors import (
    AdminRequiredError,
    AlreadyConfirmedError,
    InternalError,
    InvalidStateTransitionError,
)
from src.cs_escrow.domain.repository import EscrowRepositoryProtocol
from src.cs_escrow.infrastructure.persistence import EscrowRepository
from src.cs_ledger.domain.repository import LedgerRepositoryProtocol
from src.cs_ledger.infrastructure.persistence import LedgerRepository
from src.cs_settlement.domain.models import SettlementRecord
from src.cs_settlement.domain.repository import SettlementRepositoryProtocol
from src.cs_settlement.infrastructure.persistence import SettlementRepository

logger = logging.getLogger(__name__)


@dataclass
class ReleaseOutcome:
    settlement: SettlementRecord
    replayed: bool = False
    wallet_balance: int | None = None


@dataclass
class RefundOutcome:
    settlement: SettlementRecord
    refunded_amount: int
    cancelled_entry_ids: list[int]


def _confirm_key(settlement: SettlementRecord, stage: LedgerStage) -> str | None:
    if stage == LedgerStage.ADVANCE:
        return settlement.advance_confirm_key
    return settlement.final_confirm_key


def _is_confirmed(settlement: SettlementRecord, stage: LedgerStage) -> bool:
    if stage == LedgerStage.ADVANCE:
        return settlement.advance_confirmed
    return settlement.final_confirmed


def check_replay(
    settlement: SettlementRecord, stage: LedgerStage, idempotency_key: str | None
) -> bool:
    """True when this request is a retry of the confirmation that already happened.

    Raises AlreadyConfirmedError when the stage is confirmed and the key does
    not match (or none was given). Returns False when not yet confirmed.
    """
    if not _is_confirmed(settlement, stage):
        return False
    if idempotency_key and idempotency_key == _confirm_key(settlement, stage):
        return True
    raise AlreadyConfirmedError(f"{stage.value} of settlement {settlement.id}")


class AdminReleaseWorkflow:
    def __init__(
        self,
        settlements: SettlementRepositoryProtocol | None = None,
        ledger: LedgerRepositoryProtocol | None = None,
        escrow: EscrowRepositoryProtocol | None = None,
    ) -> None:
        self._settlements: SettlementRepositoryProtocol = settlements or SettlementRepository()
        self._ledger: LedgerRepositoryProtocol = ledger or LedgerRepository()
        self._escrow: EscrowRepositoryProtocol = escrow or EscrowRepository()

    async def release_advance(
        self,
        db: AsyncSession,
        settlement: SettlementRecord,
        actor: Actor,
        evidence_ref: str | None,
        idempotency_key: str | None,
    ) -> ReleaseOutcome:
        return await self._release(
            db, settlement, actor, evidence_ref, idempotency_key, LedgerStage.ADVANCE
        )

    async def release_final(
        self,
        db: AsyncSession,
        settlement: SettlementRecord,
        actor: Actor,
        evidence_ref: str | None,
        idempotency_key: str | None,
    ) -> ReleaseOutcome:
        return await self._release(
            db, settlement, actor, evidence_ref, idempotency_key, LedgerStage.FINAL
        )

    async def _release(
        self,
        db: AsyncSession,
        settlement: SettlementRecord,
        actor: Actor,
        evidence_ref: str | None,
        idempotency_key: str | None,
        stage: LedgerStage,
    ) -> ReleaseOutcome:
        if not actor.is_admin:
            raise AdminRequiredError()
        if check_replay(settlement, stage, idempotency_key):
            return ReleaseOutcome(settlement=settlement, replayed=True)

        if stage == LedgerStage.ADVANCE:
            updated = await self._settlements.mark_advance_confirmed(
                db, settlement.id, evidence_ref, idempotency_key, actor.id
            )
            entry_id, amount = settlement.advance_entry_id, settlement.advance_amount
        else:
            updated = await self._settlements.mark_final_confirmed(
                db, settlement.id, evidence_ref, idempotency_key, actor.id
            )
            entry_id, amount = settlement.final_entry_id, settlement.final_amount

        if updated is None:
            # lost the race: decide between a concurrent same-key retry and a conflict
            current = await self._settlements.get(db, settlement.id)
            if current is None:
                raise InternalError(f"Settlement {settlement.id} vanished during release")
            if current.is_refunded:
                raise InvalidStateTransitionError(f"confirm_{stage.value}", "refunded")
            if check_replay(current, stage, idempotency_key):
                return ReleaseOutcome(settlement=current, replayed=True)
            raise InvalidStateTransitionError(f"confirm_{stage.value}", "advance not confirmed")

        wallet_balance = None
        if entry_id is not None:
            _, wallet = await self._ledger.confirm(db, entry_id)
            wallet_balance = wallet.balance
        if amount > 0:
            if updated.escrow_hold_id is None:
                raise InternalError(f"Settlement {settlement.id} has no escrow hold")
            await self._escrow.release(db, updated.escrow_hold_id, amount)

        logger.info(
            "Settlement %s %s released: amount=%d by=%s",
            settlement.id, stage.value, amount, actor.id,
        )
        return ReleaseOutcome(settlement=updated, wallet_balance=wallet_balance)

    async def refund(
        self,
        db: AsyncSession,
        settlement: SettlementRecord,
        actor: Actor,
        reason: str,
    ) -> RefundOutcome:
        if not actor.is_admin:
            raise AdminRequiredError()
        if settlement.is_refunded or settlement.final_confirmed:
            raise InvalidStateTransitionError(
                "refund", "refunded" if settlement.is_refunded else "final confirmed"
            )
        if settlement.escrow_hold_id is None:
            raise InternalError(f"Settlement {settlement.id} has no escrow hold")

        hold = await self._escrow.get(db, settlement.escrow_hold_id)
        if hold is None:
            raise InternalError(f"Escrow hold {settlement.escrow_hold_id} is missing")
        refunded_now = 0
        # the commission can draw the whole hold at open(); nothing is left to return
        if hold.remaining > 0:
            _, refunded_now = await self._escrow.refund(db, settlement.escrow_hold_id)
        if refunded_now > 0:
            await self._ledger.credit(
                db,
                settlement.payer_id,
                refunded_now,
                LedgerStage.REFUND.value,
                f"refund:{settlement.id}",
                settlement_id=settlement.id,
                description=f"Refund for collaboration {settlement.collaboration_id}: {reason}",
            )
        cancelled = await self._ledger.cancel_pending(db, settlement.id)
        updated = await self._settlements.mark_refunded(
            db, settlement.id, reason, refunded_now, actor.id
        )
        if updated is None:
            raise InvalidStateTransitionError("refund", "settlement already closed")

        logger.info(
            "Settlement %s refunded: amount=%d cancelled_entries=%s by=%s",
            settlement.id, refunded_now, cancelled, actor.id,
        )
        return RefundOutcome(
            settlement=updated, refunded_amount=refunded_now, cancelled_entry_ids=cancelled
        )
