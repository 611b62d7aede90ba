"""Tests for AdminReleaseWorkflow: advance/final release and refund."""

import asyncio

import pytest

from src.cs_common.actor import Actor
from src.cs_common.errors import (
    AdminRequiredError,
    AlreadyConfirmedError,
    InvalidStateTransitionError,
)
from src.cs_flow.domain.actions import PaymentVerified
from src.cs_flow.domain.models import Collaboration

ADMIN = Actor.admin("admin-1")


async def _open(world, amount: int = 10000):
    collab = Collaboration(
        id="c1",
        payer_id="payer-1",
        payee_id="payee-1",
        title="Reel",
        flow_state="awaiting_payment",
        awaiting_role="payer",
        agreed_amount=amount,
        external_order_id="order_c1",
    )
    return await world.tracker.open(
        world.db, collab, PaymentVerified("order_c1", "pay_1", amount)
    )


class TestReleaseAdvance:
    async def test_credits_payee_and_draws_escrow(self, world) -> None:
        record = await _open(world)
        outcome = await world.release.release_advance(world.db, record, ADMIN, "utr-1", "k-adv")

        assert outcome.replayed is False
        assert outcome.wallet_balance == 2700
        assert outcome.settlement.advance_status == "confirmed"
        assert outcome.settlement.advance_evidence_ref == "utr-1"
        assert outcome.settlement.advance_confirmed_by == "admin-1"
        assert world.balance("payee-1") == 2700
        assert world.ledger.entries[record.advance_entry_id].status == "completed"
        assert world.escrow.holds[record.escrow_hold_id].released_amount == 3700

    async def test_non_admin_rejected(self, world) -> None:
        record = await _open(world)
        with pytest.raises(AdminRequiredError):
            await world.release.release_advance(
                world.db, record, Actor.user("payer-1"), None, None
            )

    async def test_same_key_replays_without_writes(self, world) -> None:
        record = await _open(world)
        first = await world.release.release_advance(world.db, record, ADMIN, "utr-1", "k-adv")
        again = await world.release.release_advance(
            world.db, first.settlement, ADMIN, "utr-1", "k-adv"
        )
        assert again.replayed is True
        assert world.balance("payee-1") == 2700
        assert len(world.ledger.completed_for("payee-1", "advance")) == 1

    async def test_other_key_after_confirmation_is_rejected(self, world) -> None:
        record = await _open(world)
        first = await world.release.release_advance(world.db, record, ADMIN, None, "k-1")
        with pytest.raises(AlreadyConfirmedError):
            await world.release.release_advance(world.db, first.settlement, ADMIN, None, "k-2")

    async def test_concurrent_confirms_credit_once(self, world) -> None:
        record = await _open(world)
        results = await asyncio.gather(
            world.release.release_advance(world.db, record, ADMIN, None, "k-a"),
            world.release.release_advance(world.db, record, ADMIN, None, "k-b"),
            return_exceptions=True,
        )
        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], (InvalidStateTransitionError, AlreadyConfirmedError))
        assert world.balance("payee-1") == 2700
        assert len(world.ledger.completed_for("payee-1", "advance")) == 1

    async def test_concurrent_same_key_confirms_replay(self, world) -> None:
        record = await _open(world)
        results = await asyncio.gather(
            world.release.release_advance(world.db, record, ADMIN, None, "k-same"),
            world.release.release_advance(world.db, record, ADMIN, None, "k-same"),
        )
        assert sorted(r.replayed for r in results) == [False, True]
        assert world.balance("payee-1") == 2700


class TestReleaseFinal:
    async def test_final_before_advance_is_rejected(self, world) -> None:
        record = await _open(world)
        with pytest.raises(InvalidStateTransitionError):
            await world.release.release_final(world.db, record, ADMIN, None, None)
        assert world.balance("payee-1") == 0

    async def test_final_closes_escrow(self, world) -> None:
        record = await _open(world)
        adv = await world.release.release_advance(world.db, record, ADMIN, None, None)
        fin = await world.release.release_final(world.db, adv.settlement, ADMIN, "utr-2", None)
        assert fin.settlement.final_status == "confirmed"
        assert world.balance("payee-1") == 9000
        hold = world.escrow.holds[record.escrow_hold_id]
        assert hold.status == "released"
        assert hold.remaining == 0


class TestRefund:
    async def test_refund_after_advance_returns_remaining(self, world) -> None:
        record = await _open(world)
        adv = await world.release.release_advance(world.db, record, ADMIN, None, None)
        outcome = await world.release.refund(world.db, adv.settlement, ADMIN, "no delivery")

        assert outcome.refunded_amount == 6300
        assert outcome.cancelled_entry_ids == [record.final_entry_id]
        assert outcome.settlement.refunded_by == "admin-1"
        assert world.balance("payer-1") == 6300
        assert world.balance("payee-1") == 2700
        assert world.ledger.entries[record.final_entry_id].status == "cancelled"
        assert world.escrow.holds[record.escrow_hold_id].status == "refunded"

    async def test_refund_before_advance_returns_net(self, world) -> None:
        record = await _open(world)
        outcome = await world.release.refund(world.db, record, ADMIN, "cancelled by payer")
        assert outcome.refunded_amount == 9000
        assert sorted(outcome.cancelled_entry_ids) == sorted(
            [record.advance_entry_id, record.final_entry_id]
        )

    @pytest.mark.parametrize(("rate_bps", "total"), [(10000, 10000), (5000, 1)])
    async def test_refund_when_commission_took_whole_hold(
        self, world_factory, rate_bps: int, total: int
    ) -> None:
        world = world_factory(rate_bps=rate_bps)
        record = await _open(world, total)
        assert record.commission_amount == total
        assert world.escrow.holds[record.escrow_hold_id].status == "released"

        outcome = await world.release.refund(world.db, record, ADMIN, "called off")

        assert outcome.refunded_amount == 0
        assert outcome.settlement.is_refunded
        assert world.balance("payer-1") == 0
        assert world.balance("PLATFORM_COMMISSION") == total
        hold = world.escrow.holds[record.escrow_hold_id]
        assert hold.status == "released"
        assert hold.remaining == 0

    async def test_refund_after_final_is_rejected(self, world) -> None:
        record = await _open(world)
        adv = await world.release.release_advance(world.db, record, ADMIN, None, None)
        fin = await world.release.release_final(world.db, adv.settlement, ADMIN, None, None)
        with pytest.raises(InvalidStateTransitionError):
            await world.release.refund(world.db, fin.settlement, ADMIN, "too late")

    async def test_release_after_refund_is_rejected(self, world) -> None:
        record = await _open(world)
        await world.release.refund(world.db, record, ADMIN, "dispute")
        with pytest.raises(InvalidStateTransitionError):
            await world.release.release_advance(world.db, record, ADMIN, None, None)
        assert world.balance("payee-1") == 0
