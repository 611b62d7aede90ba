"""End-to-end tests for FlowService over in-memory repositories."""

import asyncio

import pytest

from src.cs_common.actor import Actor
from src.cs_common.errors import (
    AdminRequiredError,
    AlreadyConfirmedError,
    AmountMismatchError,
    ForbiddenError,
    IdempotencyConflictError,
    InvalidStateTransitionError,
    NotYourTurnError,
    SettlementNotFoundError,
)
from src.cs_flow.domain.actions import (
    AcceptAmount,
    ApproveWork,
    Cancel,
    ConfirmAdvance,
    ConfirmFinal,
    PaymentVerified,
    ProceedToPayment,
    ProposeAmount,
    Refund,
    RequestRevision,
    SubmitWork,
)
from src.cs_flow.domain.events import FlowStateChanged
from src.cs_ledger.domain.constants import PLATFORM_COMMISSION_WALLET

PAYER = Actor.user("payer-1")
PAYEE = Actor.user("payee-1")
ADMIN = Actor.admin("admin-1")
SYSTEM = Actor.system()


async def _agreed(world, amount: int = 10000) -> str:
    created = await world.flow.create_collaboration(
        world.db, PAYER, "payer-1", "payee-1", "Product reel", proposed_amount=amount
    )
    await world.flow.dispatch(world.db, created.id, PAYEE, AcceptAmount())
    return created.id


async def _paid(world, amount: int = 10000, payment_id: str = "pay_1") -> str:
    cid = await _agreed(world, amount)
    await world.flow.dispatch(world.db, cid, PAYER, ProceedToPayment())
    order_id = world.collaborations.rows[cid].external_order_id
    await world.flow.dispatch(world.db, cid, SYSTEM, PaymentVerified(order_id, payment_id, amount))
    return cid


class TestCreate:
    async def test_creator_waits_for_counterpart(self, world) -> None:
        resp = await world.flow.create_collaboration(
            world.db, PAYEE, "payer-1", "payee-1", "Reel", proposed_amount=5000
        )
        assert resp.flow_state == "negotiating"
        assert resp.awaiting_role == "payer"
        assert resp.proposed_by == "payee"
        assert resp.your_role == "payee"
        world.db.commit.assert_awaited()

    async def test_outsider_cannot_create(self, world) -> None:
        with pytest.raises(ForbiddenError):
            await world.flow.create_collaboration(world.db, Actor.user("x"), "payer-1", "payee-1", "t")

    async def test_same_user_on_both_sides(self, world) -> None:
        with pytest.raises(ForbiddenError):
            await world.flow.create_collaboration(world.db, PAYER, "payer-1", "payer-1", "t")


class TestNegotiation:
    async def test_counter_offers_then_accept(self, world) -> None:
        created = await world.flow.create_collaboration(
            world.db, PAYER, "payer-1", "payee-1", "Reel", proposed_amount=8000
        )
        cid = created.id
        await world.flow.dispatch(world.db, cid, PAYEE, ProposeAmount(12000))
        await world.flow.dispatch(world.db, cid, PAYER, ProposeAmount(10000))
        resp = await world.flow.dispatch(world.db, cid, PAYEE, AcceptAmount())
        assert resp.collaboration.flow_state == "price_agreed"
        assert resp.collaboration.agreed_amount == 10000
        # only the payer may move on to payment; either side may still cancel
        assert resp.collaboration.allowed_actions == ["cancel"]

    async def test_out_of_turn_is_rejected_and_rolled_back(self, world) -> None:
        cid = (await world.flow.create_collaboration(
            world.db, PAYER, "payer-1", "payee-1", "Reel", proposed_amount=8000
        )).id
        with pytest.raises(NotYourTurnError):
            await world.flow.dispatch(world.db, cid, PAYER, ProposeAmount(9000))
        world.db.rollback.assert_awaited()

    async def test_outsider_cannot_dispatch(self, world) -> None:
        cid = await _agreed(world)
        with pytest.raises(ForbiddenError):
            await world.flow.dispatch(world.db, cid, Actor.user("mallory"), Cancel())

    async def test_cancel_is_terminal(self, world) -> None:
        cid = await _agreed(world)
        resp = await world.flow.dispatch(world.db, cid, PAYEE, Cancel("budget cut"))
        assert resp.collaboration.flow_state == "cancelled"
        assert resp.collaboration.awaiting_role is None
        with pytest.raises(InvalidStateTransitionError):
            await world.flow.dispatch(world.db, cid, PAYER, ProceedToPayment())


class TestHappyPath:
    async def test_full_lifecycle(self, world) -> None:
        cid = await _paid(world)

        collab = world.collaborations.rows[cid]
        assert collab.flow_state == "admin_advance_pending"
        breakdown = await world.flow.get_breakdown(world.db, cid, PAYEE)
        assert (breakdown.commission, breakdown.advance, breakdown.final) == (1000, 2700, 6300)
        assert world.balance(PLATFORM_COMMISSION_WALLET) == 1000

        resp = await world.flow.dispatch(
            world.db, cid, ADMIN, ConfirmAdvance(evidence_ref="utr-1", idempotency_key="adv-1")
        )
        assert resp.collaboration.flow_state == "work_in_progress"
        assert resp.breakdown is not None and resp.breakdown.advance_status == "confirmed"
        assert world.balance("payee-1") == 2700

        await world.flow.dispatch(world.db, cid, PAYEE, SubmitWork("drive://v1"))
        await world.flow.dispatch(world.db, cid, PAYER, RequestRevision("shorter intro"))
        await world.flow.dispatch(world.db, cid, PAYEE, SubmitWork("drive://v2"))
        await world.flow.dispatch(world.db, cid, PAYER, ApproveWork())
        resp = await world.flow.dispatch(world.db, cid, ADMIN, ConfirmFinal(evidence_ref="utr-2"))

        assert resp.collaboration.flow_state == "closed"
        assert world.balance("payee-1") == 9000
        assert world.balance("payee-1") + world.balance(PLATFORM_COMMISSION_WALLET) == 10000
        assert world.publisher.milestones() == [
            "payment_breakdown", "advance_released", "final_released",
        ]

        timeline = await world.flow.get_timeline(world.db, cid, PAYER)
        assert [i.event for i in timeline.items] == [
            "payment_received", "advance_released", "final_released",
        ]

    async def test_history_hides_evidence_from_parties(self, world) -> None:
        cid = await _paid(world)
        await world.flow.dispatch(
            world.db, cid, ADMIN, ConfirmAdvance(evidence_ref="utr-1", idempotency_key="adv-1")
        )

        party_view = await world.flow.get_history(world.db, cid, PAYEE)
        admin_view = await world.flow.get_history(world.db, cid, ADMIN)
        actions = [i.action for i in party_view.items]
        assert actions == [
            "create", "accept_amount", "proceed_to_payment", "payment_verified", "confirm_advance",
        ]
        assert party_view.items[-1].detail == {}
        assert admin_view.items[-1].detail == {"evidence_ref": "utr-1", "idempotency_key": "adv-1"}
        assert admin_view.items[-1].actor_kind == "admin"
        assert admin_view.items[3].actor_kind == "system"

    async def test_state_event_published_after_commit(self, world) -> None:
        cid = await _agreed(world)
        cid_events = world.publisher.published[-1]
        assert cid_events[0] == cid
        event = cid_events[1][0]
        assert isinstance(event, FlowStateChanged)
        assert (event.previous_state, event.new_state) == ("negotiating", "price_agreed")


class TestGuards:
    async def test_approve_before_advance_is_illegal(self, world) -> None:
        cid = await _paid(world)
        with pytest.raises(InvalidStateTransitionError):
            await world.flow.dispatch(world.db, cid, PAYER, ApproveWork())
        assert world.balance("payee-1") == 0

    async def test_party_cannot_confirm(self, world) -> None:
        cid = await _paid(world)
        with pytest.raises(AdminRequiredError):
            await world.flow.dispatch(world.db, cid, PAYEE, ConfirmAdvance())

    async def test_amount_must_match_agreement(self, world) -> None:
        cid = await _agreed(world)
        await world.flow.dispatch(world.db, cid, PAYER, ProceedToPayment("order_x"))
        with pytest.raises(AmountMismatchError):
            await world.flow.dispatch(world.db, cid, SYSTEM, PaymentVerified("order_x", "p", 9999))
        assert world.settlements.rows == {}

    async def test_order_id_of_another_collaboration(self, world) -> None:
        first = await _agreed(world)
        second = await _agreed(world)
        await world.flow.dispatch(world.db, first, PAYER, ProceedToPayment("order_dup"))
        with pytest.raises(IdempotencyConflictError):
            await world.flow.dispatch(world.db, second, PAYER, ProceedToPayment("order_dup"))
        assert world.collaborations.rows[second].flow_state == "price_agreed"

    async def test_concurrent_order_id_claims(self, world) -> None:
        first = await _agreed(world)
        second = await _agreed(world)
        results = await asyncio.gather(
            world.flow.dispatch(world.db, first, PAYER, ProceedToPayment("order_dup")),
            world.flow.dispatch(world.db, second, PAYER, ProceedToPayment("order_dup")),
            return_exceptions=True,
        )
        assert sum(isinstance(r, IdempotencyConflictError) for r in results) == 1
        owners = [
            c.id for c in world.collaborations.rows.values()
            if c.external_order_id == "order_dup"
        ]
        assert len(owners) == 1
        world.db.rollback.assert_awaited()

    async def test_breakdown_before_payment(self, world) -> None:
        cid = await _agreed(world)
        with pytest.raises(SettlementNotFoundError):
            await world.flow.get_breakdown(world.db, cid, PAYER)


class TestIdempotentConfirmation:
    async def test_retry_with_same_key_replays(self, world) -> None:
        cid = await _paid(world)
        await world.flow.dispatch(world.db, cid, ADMIN, ConfirmAdvance(idempotency_key="adv-1"))
        again = await world.flow.dispatch(
            world.db, cid, ADMIN, ConfirmAdvance(idempotency_key="adv-1")
        )
        assert again.replayed is True
        assert again.collaboration.flow_state == "work_in_progress"
        assert world.balance("payee-1") == 2700

    async def test_second_confirm_with_new_key(self, world) -> None:
        cid = await _paid(world)
        await world.flow.dispatch(world.db, cid, ADMIN, ConfirmAdvance(idempotency_key="adv-1"))
        with pytest.raises(AlreadyConfirmedError):
            await world.flow.dispatch(world.db, cid, ADMIN, ConfirmAdvance(idempotency_key="adv-2"))

    async def test_concurrent_confirms_move_money_once(self, world) -> None:
        cid = await _paid(world)
        results = await asyncio.gather(
            world.flow.dispatch(world.db, cid, ADMIN, ConfirmAdvance(idempotency_key="a")),
            world.flow.dispatch(world.db, cid, ADMIN, ConfirmAdvance(idempotency_key="b")),
            return_exceptions=True,
        )
        assert sum(not isinstance(r, Exception) for r in results) == 1
        assert len(world.ledger.completed_for("payee-1", "advance")) == 1
        assert world.balance("payee-1") == 2700
        assert world.collaborations.rows[cid].flow_state == "work_in_progress"

    async def test_settlement_keyed_entry_point(self, world) -> None:
        cid = await _paid(world)
        settlement = await world.settlements.get_by_collaboration(world.db, cid)
        resp = await world.flow.confirm_advance(world.db, settlement.id, ADMIN, "utr-9", "k")
        assert resp.collaboration.id == cid
        assert resp.action == "confirm_advance"
        with pytest.raises(SettlementNotFoundError):
            await world.flow.confirm_final(world.db, "missing", ADMIN, None, None)


class TestRefund:
    async def test_refund_after_advance(self, world) -> None:
        cid = await _paid(world)
        await world.flow.dispatch(world.db, cid, ADMIN, ConfirmAdvance())
        await world.flow.dispatch(world.db, cid, PAYEE, SubmitWork())
        resp = await world.flow.dispatch(world.db, cid, ADMIN, Refund("work never delivered"))

        assert resp.collaboration.flow_state == "refunded"
        assert world.balance("payer-1") == 6300
        assert world.balance("payee-1") == 2700
        assert world.publisher.milestones()[-1] == "refunded"

        timeline = await world.flow.get_timeline(world.db, cid, ADMIN)
        assert timeline.items[-1].event == "refunded"
        assert timeline.items[-1].amount == 6300

        for actor, action in [
            (PAYER, ApproveWork()),
            (ADMIN, ConfirmFinal()),
            (ADMIN, Refund("again")),
        ]:
            with pytest.raises(InvalidStateTransitionError):
                await world.flow.dispatch(world.db, cid, actor, action)

    async def test_refund_via_settlement_id(self, world) -> None:
        cid = await _paid(world)
        settlement = await world.settlements.get_by_collaboration(world.db, cid)
        resp = await world.flow.refund(world.db, settlement.id, ADMIN, "duplicate booking")
        assert resp.collaboration.flow_state == "refunded"
        assert world.balance("payer-1") == 9000
