"""FlowService: drives a collaboration through its state machine.

dispatch() is the single write path:
    load -> resolve the actor's role -> (admin confirmations) idempotent-replay
    check -> guard -> settlement effects -> compare-and-swap of flow_state ->
    audit row -> commit -> publish events

Effects and the CAS share one transaction, so a transition and its money
movements commit together or not at all. Events go out only after commit.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_common.actor import Actor
from src.cs_common.datetime_utils import utc_now
from src.cs_common.enums import FlowState, LedgerStage, Role
from src.cs_common.errors import (
    AdminRequiredError,
    AmountMismatchError,
    CollaborationNotFoundError,
    ForbiddenError,
    IdempotencyConflictError,
    InvalidAmountError,
    InvalidStateTransitionError,
    PaymentVerificationError,
    SettlementNotFoundError,
)
from src.cs_common.id_generator import generate_id
from src.cs_flow.application import messages
from src.cs_flow.application.schemas import (
    CollaborationResponse,
    DispatchResponse,
    HistoryItem,
    HistoryResponse,
)
from src.cs_flow.domain.actions import (
    Action,
    ConfirmAdvance,
    ConfirmFinal,
    PaymentVerified,
    ProceedToPayment,
    Refund,
    action_detail,
)
from src.cs_flow.domain.events import EventPublisherProtocol, FlowStateChanged, Milestone
from src.cs_flow.domain.machine import allowed_actions, counterpart, plan_transition
from src.cs_flow.domain.models import Collaboration, StateChange
from src.cs_flow.domain.repository import CollaborationRepositoryProtocol
from src.cs_flow.infrastructure.persistence import CollaborationRepository
from src.cs_flow.infrastructure.publisher import RedisEventPublisher
from src.cs_settlement.application.release import AdminReleaseWorkflow, check_replay
from src.cs_settlement.application.schemas import (
    BreakdownResponse,
    TimelineResponse,
)
from src.cs_settlement.application.tracker import SettlementTracker
from src.cs_settlement.domain.models import SettlementRecord
from src.cs_settlement.domain.repository import SettlementRepositoryProtocol
from src.cs_settlement.infrastructure.persistence import SettlementRepository

logger = logging.getLogger(__name__)

_ADMIN_ACTIONS = (ConfirmAdvance, ConfirmFinal, Refund)


def resolve_role(collab: Collaboration, actor: Actor) -> Role:
    if actor.is_admin:
        return Role.ADMIN
    if actor.is_system:
        return Role.SYSTEM
    role = collab.role_of(actor.id)
    if role is None:
        raise ForbiddenError()
    return role


@dataclass
class _Outcome:
    collab: Collaboration
    events: list[FlowStateChanged | Milestone] = field(default_factory=list)
    settlement: SettlementRecord | None = None
    replayed: bool = False


class FlowService:
    def __init__(
        self,
        repo: CollaborationRepositoryProtocol | None = None,
        tracker: SettlementTracker | None = None,
        release: AdminReleaseWorkflow | None = None,
        settlements: SettlementRepositoryProtocol | None = None,
        publisher: EventPublisherProtocol | None = None,
    ) -> None:
        self._repo: CollaborationRepositoryProtocol = repo or CollaborationRepository()
        self._tracker = tracker or SettlementTracker()
        self._release = release or AdminReleaseWorkflow()
        self._settlements: SettlementRepositoryProtocol = settlements or SettlementRepository()
        self._publisher: EventPublisherProtocol = publisher or RedisEventPublisher()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _require(self, db: AsyncSession, collaboration_id: str) -> Collaboration:
        collab = await self._repo.get(db, collaboration_id)
        if collab is None:
            raise CollaborationNotFoundError(collaboration_id)
        return collab

    async def _require_visible(
        self, db: AsyncSession, collaboration_id: str, actor: Actor
    ) -> tuple[Collaboration, Role]:
        collab = await self._require(db, collaboration_id)
        return collab, resolve_role(collab, actor)

    def _to_response(self, collab: Collaboration, role: Role) -> CollaborationResponse:
        return CollaborationResponse.from_collaboration(
            collab, role.value, allowed_actions(collab, role)
        )

    async def get_collaboration(
        self, db: AsyncSession, collaboration_id: str, actor: Actor
    ) -> CollaborationResponse:
        collab, role = await self._require_visible(db, collaboration_id, actor)
        return self._to_response(collab, role)

    async def get_history(
        self, db: AsyncSession, collaboration_id: str, actor: Actor
    ) -> HistoryResponse:
        await self._require_visible(db, collaboration_id, actor)
        transitions = await self._repo.list_transitions(db, collaboration_id)
        return HistoryResponse(
            collaboration_id=collaboration_id,
            items=[HistoryItem.from_transition(t, actor.is_admin) for t in transitions],
        )

    async def get_breakdown(
        self, db: AsyncSession, collaboration_id: str, actor: Actor
    ) -> BreakdownResponse:
        await self._require_visible(db, collaboration_id, actor)
        return await self._tracker.get_breakdown(db, collaboration_id)

    async def get_timeline(
        self, db: AsyncSession, collaboration_id: str, actor: Actor
    ) -> TimelineResponse:
        await self._require_visible(db, collaboration_id, actor)
        return await self._tracker.get_timeline(db, collaboration_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_collaboration(
        self,
        db: AsyncSession,
        actor: Actor,
        payer_id: str,
        payee_id: str,
        title: str,
        proposed_amount: int | None = None,
    ) -> CollaborationResponse:
        if payer_id == payee_id:
            raise ForbiddenError("Payer and payee must be different users")
        if actor.id not in (payer_id, payee_id) or actor.is_admin:
            raise ForbiddenError("Only a party to the collaboration can open it")
        if proposed_amount is not None and proposed_amount <= 0:
            raise InvalidAmountError(f"proposal must be positive, got {proposed_amount}")

        creator_role = Role.PAYER if actor.id == payer_id else Role.PAYEE
        collab = Collaboration(
            id=generate_id(),
            payer_id=payer_id,
            payee_id=payee_id,
            title=title,
            flow_state=FlowState.NEGOTIATING.value,
            awaiting_role=counterpart(creator_role).value,
            proposed_amount=proposed_amount,
            proposed_by=creator_role.value if proposed_amount is not None else None,
        )
        try:
            created = await self._repo.create(db, collab)
            await self._repo.record_transition(
                db,
                created.id,
                created.flow_state,
                StateChange(new_state=created.flow_state, awaiting_role=created.awaiting_role),
                "create",
                actor,
                {"proposed_amount": proposed_amount} if proposed_amount is not None else {},
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Collaboration created: id=%s payer=%s payee=%s by=%s",
            created.id, payer_id, payee_id, actor.id,
        )
        return self._to_response(created, creator_role)

    async def dispatch(
        self, db: AsyncSession, collaboration_id: str, actor: Actor, action: Action
    ) -> DispatchResponse:
        collab = await self._require(db, collaboration_id)
        role = resolve_role(collab, actor)
        try:
            outcome = await self._run(db, collab, actor, role, action)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await self._publisher.publish(collab.id, outcome.events)
        return DispatchResponse(
            collaboration=self._to_response(outcome.collab, role),
            action=action.name,
            replayed=outcome.replayed,
            breakdown=(
                BreakdownResponse.from_record(outcome.settlement) if outcome.settlement else None
            ),
        )

    async def _run(
        self,
        db: AsyncSession,
        collab: Collaboration,
        actor: Actor,
        role: Role,
        action: Action,
    ) -> _Outcome:
        if isinstance(action, _ADMIN_ACTIONS) and not actor.is_admin:
            raise AdminRequiredError()

        settlement: SettlementRecord | None = None
        if isinstance(action, (ConfirmAdvance, ConfirmFinal)):
            # a retried confirmation finds the flow already moved on; answer it
            # before the guard so the retry is not reported as an illegal move
            settlement = await self._settlements.get_by_collaboration(db, collab.id)
            stage = LedgerStage.ADVANCE if isinstance(action, ConfirmAdvance) else LedgerStage.FINAL
            if settlement is not None and check_replay(settlement, stage, action.idempotency_key):
                return _Outcome(collab=collab, settlement=settlement, replayed=True)

        change = plan_transition(collab, role, action)
        now = utc_now().isoformat()
        milestones: list[Milestone] = []

        if isinstance(action, ProceedToPayment):
            order_id = action.external_order_id or f"order_{generate_id()}"
            owner = await self._repo.get_by_external_order_id(db, order_id)
            if owner is not None and owner.id != collab.id:
                raise IdempotencyConflictError(order_id)
            change.external_order_id = order_id

        elif isinstance(action, PaymentVerified):
            if action.external_order_id != collab.external_order_id:
                raise PaymentVerificationError()
            if action.verified_amount != collab.agreed_amount:
                raise AmountMismatchError(collab.agreed_amount or 0, action.verified_amount)
            settlement = await self._tracker.open(db, collab, action)
            milestones.append(Milestone(
                collab.id, "payment_breakdown", messages.payment_breakdown(settlement), now
            ))

        elif isinstance(action, (ConfirmAdvance, ConfirmFinal)):
            if settlement is None:
                settlement = await self._tracker.require(db, collab.id)
            if isinstance(action, ConfirmAdvance):
                result = await self._release.release_advance(
                    db, settlement, actor, action.evidence_ref, action.idempotency_key
                )
                text = messages.advance_released(result.settlement)
                milestone = "advance_released"
            else:
                result = await self._release.release_final(
                    db, settlement, actor, action.evidence_ref, action.idempotency_key
                )
                text = messages.final_released(result.settlement)
                milestone = "final_released"
            if result.replayed:
                return _Outcome(collab=collab, settlement=result.settlement, replayed=True)
            settlement = result.settlement
            milestones.append(Milestone(collab.id, milestone, text, now))

        elif isinstance(action, Refund):
            settlement = await self._tracker.require(db, collab.id)
            refund = await self._release.refund(db, settlement, actor, action.reason)
            settlement = refund.settlement
            milestones.append(Milestone(
                collab.id, "refunded", messages.refunded(settlement, refund.refunded_amount), now
            ))

        updated = await self._repo.compare_and_set(db, collab, change)
        if updated is None:
            raise InvalidStateTransitionError(action.name, collab.flow_state)
        await self._repo.record_transition(
            db, collab.id, collab.flow_state, change, action.name, actor, action_detail(action)
        )
        logger.info(
            "Collaboration %s: %s -> %s via %s by %s",
            collab.id, collab.flow_state, updated.flow_state, action.name, actor.id,
        )
        state_event = FlowStateChanged(
            collaboration_id=collab.id,
            previous_state=collab.flow_state,
            new_state=updated.flow_state,
            awaiting_role=updated.awaiting_role,
            timestamp=now,
        )
        return _Outcome(collab=updated, events=[state_event, *milestones], settlement=settlement)

    # ------------------------------------------------------------------
    # Settlement-keyed admin entry points
    # ------------------------------------------------------------------

    async def _settlement(self, db: AsyncSession, settlement_id: str) -> SettlementRecord:
        record = await self._settlements.get(db, settlement_id)
        if record is None:
            raise SettlementNotFoundError(settlement_id)
        return record

    async def confirm_advance(
        self,
        db: AsyncSession,
        settlement_id: str,
        actor: Actor,
        evidence_ref: str | None,
        idempotency_key: str | None,
    ) -> DispatchResponse:
        record = await self._settlement(db, settlement_id)
        return await self.dispatch(
            db, record.collaboration_id, actor,
            ConfirmAdvance(evidence_ref=evidence_ref, idempotency_key=idempotency_key),
        )

    async def confirm_final(
        self,
        db: AsyncSession,
        settlement_id: str,
        actor: Actor,
        evidence_ref: str | None,
        idempotency_key: str | None,
    ) -> DispatchResponse:
        record = await self._settlement(db, settlement_id)
        return await self.dispatch(
            db, record.collaboration_id, actor,
            ConfirmFinal(evidence_ref=evidence_ref, idempotency_key=idempotency_key),
        )

    async def refund(
        self, db: AsyncSession, settlement_id: str, actor: Actor, reason: str
    ) -> DispatchResponse:
        record = await self._settlement(db, settlement_id)
        return await self.dispatch(db, record.collaboration_id, actor, Refund(reason=reason))
