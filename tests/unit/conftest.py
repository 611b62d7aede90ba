"""In-memory repositories and fixtures for service-level tests.

Each fake mirrors the SQL repository it replaces: reads yield to the event
loop first, and every compare-and-swap checks and writes without awaiting in
between, the same way a single UPDATE ... WHERE ... RETURNING would.
"""

import asyncio
import itertools
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.cs_common.actor import Actor
from src.cs_common.errors import (
    AlreadyConfirmedError,
    EscrowHoldNotFoundError,
    EscrowOverreleaseError,
    IdempotencyConflictError,
    LedgerEntryNotFoundError,
)
from src.cs_common.id_generator import generate_id
from src.cs_commission.application.service import CommissionSettingsService
from src.cs_commission.domain.models import CommissionSetting
from src.cs_escrow.domain.models import EscrowHold
from src.cs_flow.application.service import FlowService
from src.cs_flow.domain.events import FlowStateChanged, Milestone
from src.cs_flow.domain.models import Collaboration, FlowTransition, StateChange
from src.cs_ledger.domain.models import CreditResult, LedgerEntry, Wallet
from src.cs_payment.domain.models import PaymentRecord
from src.cs_settlement.application.release import AdminReleaseWorkflow
from src.cs_settlement.application.tracker import SettlementTracker
from src.cs_settlement.domain.models import PendingSettlement, SettlementRecord, SettlementStats


def _now() -> datetime:
    return datetime.now(UTC)


def make_db() -> MagicMock:
    db = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    return db


class FakeCommissionRepository:
    def __init__(self, rate_bps: int | None = 1000) -> None:
        self._ids = itertools.count(1)
        self.settings: list[CommissionSetting] = []
        if rate_bps is not None:
            self._add(rate_bps, "seed")

    def _add(self, rate_bps: int, created_by: str) -> CommissionSetting:
        setting = CommissionSetting(
            id=next(self._ids),
            rate_bps=rate_bps,
            is_active=True,
            effective_from=_now(),
            created_by=created_by,
            created_at=_now(),
        )
        self.settings.append(setting)
        return setting

    async def get_active(self, db: Any) -> CommissionSetting | None:
        await asyncio.sleep(0)
        active = [s for s in self.settings if s.is_active]
        return active[-1] if active else None

    async def replace_active(self, db: Any, rate_bps: int, created_by: str) -> CommissionSetting:
        for s in self.settings:
            s.is_active = False
        return self._add(rate_bps, created_by)


class FakeCollaborationRepository:
    def __init__(self) -> None:
        self.rows: dict[str, Collaboration] = {}
        self.transitions: list[FlowTransition] = []
        self._transition_ids = itertools.count(1)

    async def create(self, db: Any, collab: Collaboration) -> Collaboration:
        stored = replace(collab, version=0, created_at=_now(), updated_at=_now())
        self.rows[stored.id] = stored
        return replace(stored)

    async def get(self, db: Any, collaboration_id: str) -> Collaboration | None:
        await asyncio.sleep(0)
        row = self.rows.get(collaboration_id)
        return replace(row) if row else None

    async def get_by_external_order_id(
        self, db: Any, external_order_id: str
    ) -> Collaboration | None:
        await asyncio.sleep(0)
        for row in self.rows.values():
            if row.external_order_id == external_order_id:
                return replace(row)
        return None

    async def compare_and_set(
        self, db: Any, collab: Collaboration, change: StateChange
    ) -> Collaboration | None:
        await asyncio.sleep(0)
        current = self.rows.get(collab.id)
        if (
            current is None
            or current.flow_state != collab.flow_state
            or current.version != collab.version
        ):
            return None
        if change.external_order_id and any(
            row.external_order_id == change.external_order_id and row.id != collab.id
            for row in self.rows.values()
        ):
            # UNIQUE (external_order_id)
            raise IdempotencyConflictError(change.external_order_id)
        updated = replace(
            current,
            flow_state=change.new_state,
            awaiting_role=change.awaiting_role,
            proposed_amount=change.proposed_amount or current.proposed_amount,
            proposed_by=change.proposed_by or current.proposed_by,
            agreed_amount=change.agreed_amount or current.agreed_amount,
            external_order_id=change.external_order_id or current.external_order_id,
            version=current.version + 1,
            updated_at=_now(),
        )
        self.rows[collab.id] = updated
        return replace(updated)

    async def record_transition(
        self,
        db: Any,
        collaboration_id: str,
        previous_state: str,
        change: StateChange,
        action: str,
        actor: Actor,
        detail: dict[str, Any],
    ) -> FlowTransition:
        transition = FlowTransition(
            id=next(self._transition_ids),
            collaboration_id=collaboration_id,
            previous_state=previous_state,
            new_state=change.new_state,
            awaiting_role=change.awaiting_role,
            action=action,
            actor_id=actor.id,
            actor_kind=actor.kind.value,
            detail=dict(detail),
            created_at=_now(),
        )
        self.transitions.append(transition)
        return transition

    async def list_transitions(self, db: Any, collaboration_id: str) -> list[FlowTransition]:
        return [t for t in self.transitions if t.collaboration_id == collaboration_id]


class FakeSettlementRepository:
    def __init__(self, collaborations: FakeCollaborationRepository | None = None) -> None:
        self.rows: dict[str, SettlementRecord] = {}
        self._collaborations = collaborations

    async def insert(self, db: Any, record: SettlementRecord) -> SettlementRecord | None:
        if any(r.collaboration_id == record.collaboration_id for r in self.rows.values()):
            return None
        stored = replace(record, created_at=_now())
        self.rows[stored.id] = stored
        return replace(stored)

    async def attach_funds(
        self,
        db: Any,
        settlement_id: str,
        advance_entry_id: int | None,
        final_entry_id: int | None,
        escrow_hold_id: str,
    ) -> SettlementRecord:
        updated = replace(
            self.rows[settlement_id],
            advance_entry_id=advance_entry_id,
            final_entry_id=final_entry_id,
            escrow_hold_id=escrow_hold_id,
        )
        self.rows[settlement_id] = updated
        return replace(updated)

    async def mark_advance_confirmed(
        self,
        db: Any,
        settlement_id: str,
        evidence_ref: str | None,
        confirm_key: str | None,
        confirmed_by: str,
    ) -> SettlementRecord | None:
        await asyncio.sleep(0)
        current = self.rows.get(settlement_id)
        if current is None or current.advance_confirmed or current.is_refunded:
            return None
        updated = replace(
            current,
            advance_status="confirmed",
            advance_evidence_ref=evidence_ref,
            advance_confirm_key=confirm_key,
            advance_confirmed_at=_now(),
            advance_confirmed_by=confirmed_by,
        )
        self.rows[settlement_id] = updated
        return replace(updated)

    async def mark_final_confirmed(
        self,
        db: Any,
        settlement_id: str,
        evidence_ref: str | None,
        confirm_key: str | None,
        confirmed_by: str,
    ) -> SettlementRecord | None:
        await asyncio.sleep(0)
        current = self.rows.get(settlement_id)
        if (
            current is None
            or not current.advance_confirmed
            or current.final_confirmed
            or current.is_refunded
        ):
            return None
        updated = replace(
            current,
            final_status="confirmed",
            final_evidence_ref=evidence_ref,
            final_confirm_key=confirm_key,
            final_confirmed_at=_now(),
            final_confirmed_by=confirmed_by,
        )
        self.rows[settlement_id] = updated
        return replace(updated)

    async def mark_refunded(
        self,
        db: Any,
        settlement_id: str,
        reason: str,
        refunded_amount: int,
        refunded_by: str,
    ) -> SettlementRecord | None:
        current = self.rows.get(settlement_id)
        if current is None or current.final_confirmed or current.is_refunded:
            return None
        updated = replace(
            current,
            refund_reason=reason,
            refunded_amount=refunded_amount,
            refunded_at=_now(),
            refunded_by=refunded_by,
        )
        self.rows[settlement_id] = updated
        return replace(updated)

    async def get(self, db: Any, settlement_id: str) -> SettlementRecord | None:
        await asyncio.sleep(0)
        row = self.rows.get(settlement_id)
        return replace(row) if row else None

    async def get_by_collaboration(
        self, db: Any, collaboration_id: str
    ) -> SettlementRecord | None:
        await asyncio.sleep(0)
        for row in self.rows.values():
            if row.collaboration_id == collaboration_id:
                return replace(row)
        return None

    async def list_pending(
        self, db: Any, status_filter: str, cursor_id: str | None, limit: int
    ) -> list[PendingSettlement]:
        rows = sorted(self.rows.values(), key=lambda r: int(r.id), reverse=True)
        result = []
        for r in rows:
            if r.is_refunded or (cursor_id is not None and int(r.id) >= int(cursor_id)):
                continue
            if status_filter == "advance_pending" and r.advance_confirmed:
                continue
            if status_filter == "final_pending" and (
                not r.advance_confirmed or r.final_confirmed
            ):
                continue
            if status_filter == "all" and r.final_confirmed:
                continue
            flow_state = "admin_advance_pending"
            if self._collaborations is not None:
                flow_state = self._collaborations.rows[r.collaboration_id].flow_state
            result.append(PendingSettlement(settlement=replace(r), flow_state=flow_state))
        return result[:limit]

    async def statistics(self, db: Any, since: datetime) -> SettlementStats:
        rows = [r for r in self.rows.values() if r.created_at and r.created_at >= since]
        return SettlementStats(
            total_settlements=len(rows),
            total_volume=sum(r.total_amount for r in rows),
            total_commission=sum(r.commission_amount for r in rows),
            advance_released=sum(r.advance_amount for r in rows if r.advance_confirmed),
            final_released=sum(r.final_amount for r in rows if r.final_confirmed),
            refunded_volume=sum(r.refunded_amount or 0 for r in rows),
        )


class FakeLedgerRepository:
    def __init__(self) -> None:
        self.entries: dict[int, LedgerEntry] = {}
        self.wallets: dict[str, Wallet] = {}
        self._ids = itertools.count(1)

    def _by_key(self, key: str) -> LedgerEntry | None:
        return next((e for e in self.entries.values() if e.idempotency_key == key), None)

    def _apply(self, payee_id: str, delta: int) -> Wallet:
        wallet = self.wallets.get(payee_id) or Wallet(payee_id=payee_id, balance=0)
        wallet = replace(wallet, balance=wallet.balance + delta, version=wallet.version + 1)
        self.wallets[payee_id] = wallet
        return replace(wallet)

    def _insert(self, payee_id, amount, stage, status, key, settlement_id, description):
        entry = LedgerEntry(
            id=next(self._ids),
            payee_id=payee_id,
            amount=amount,
            direction="credit",
            stage=stage,
            status=status,
            idempotency_key=key,
            settlement_id=settlement_id,
            description=description,
            created_at=_now(),
            completed_at=_now() if status == "completed" else None,
        )
        self.entries[entry.id] = entry
        return entry

    async def credit(
        self,
        db: Any,
        payee_id: str,
        amount: int,
        stage: str,
        idempotency_key: str,
        settlement_id: str | None = None,
        description: str | None = None,
    ) -> CreditResult:
        existing = self._by_key(idempotency_key)
        if existing is not None:
            if existing.payee_id != payee_id or existing.amount != amount:
                raise IdempotencyConflictError(idempotency_key)
            return CreditResult(entry=replace(existing), wallet=None, applied=False)
        entry = self._insert(
            payee_id, amount, stage, "completed", idempotency_key, settlement_id, description
        )
        return CreditResult(entry=replace(entry), wallet=self._apply(payee_id, amount), applied=True)

    async def reserve(
        self,
        db: Any,
        payee_id: str,
        amount: int,
        stage: str,
        idempotency_key: str,
        settlement_id: str | None = None,
        description: str | None = None,
    ) -> LedgerEntry:
        existing = self._by_key(idempotency_key)
        if existing is not None:
            return replace(existing)
        entry = self._insert(
            payee_id, amount, stage, "pending", idempotency_key, settlement_id, description
        )
        return replace(entry)

    async def confirm(self, db: Any, entry_id: int) -> tuple[LedgerEntry, Wallet]:
        await asyncio.sleep(0)
        entry = self.entries.get(entry_id)
        if entry is None:
            raise LedgerEntryNotFoundError(entry_id)
        if entry.status != "pending":
            raise AlreadyConfirmedError(f"ledger entry {entry_id} is {entry.status}")
        entry = replace(entry, status="completed", completed_at=_now())
        self.entries[entry_id] = entry
        return replace(entry), self._apply(entry.payee_id, entry.amount)

    async def cancel_pending(self, db: Any, settlement_id: str) -> list[int]:
        cancelled = []
        for entry_id, entry in self.entries.items():
            if entry.settlement_id == settlement_id and entry.status == "pending":
                self.entries[entry_id] = replace(entry, status="cancelled")
                cancelled.append(entry_id)
        return cancelled

    async def get_entry(self, db: Any, entry_id: int) -> LedgerEntry | None:
        entry = self.entries.get(entry_id)
        return replace(entry) if entry else None

    async def get_wallet(self, db: Any, payee_id: str) -> Wallet | None:
        wallet = self.wallets.get(payee_id)
        return replace(wallet) if wallet else None

    async def list_entries(
        self, db: Any, payee_id: str, cursor_id: int | None, limit: int, stage: str | None
    ) -> list[LedgerEntry]:
        rows = [
            e for e in sorted(self.entries.values(), key=lambda e: e.id, reverse=True)
            if e.payee_id == payee_id
            and (cursor_id is None or e.id < cursor_id)
            and (stage is None or e.stage == stage)
        ]
        return rows[:limit]

    def completed_for(self, payee_id: str, stage: str) -> list[LedgerEntry]:
        return [
            e for e in self.entries.values()
            if e.payee_id == payee_id and e.stage == stage and e.status == "completed"
        ]


class FakeEscrowRepository:
    def __init__(self) -> None:
        self.holds: dict[str, EscrowHold] = {}

    async def create(
        self, db: Any, collaboration_id: str, settlement_id: str, payer_id: str, amount: int
    ) -> EscrowHold:
        hold = EscrowHold(
            id=generate_id(),
            collaboration_id=collaboration_id,
            settlement_id=settlement_id,
            payer_id=payer_id,
            amount=amount,
            created_at=_now(),
        )
        self.holds[hold.id] = hold
        return replace(hold)

    async def release(self, db: Any, hold_id: str, amount: int) -> EscrowHold:
        await asyncio.sleep(0)
        hold = self.holds.get(hold_id)
        if hold is None:
            raise EscrowHoldNotFoundError(hold_id)
        if hold.status != "held" or amount > hold.remaining:
            raise EscrowOverreleaseError(hold_id, amount, hold.remaining)
        released = hold.released_amount + amount
        closed = released + hold.refunded_amount == hold.amount
        hold = replace(
            hold,
            released_amount=released,
            status="released" if closed else "held",
            closed_at=_now() if closed else None,
        )
        self.holds[hold_id] = hold
        return replace(hold)

    async def refund(self, db: Any, hold_id: str) -> tuple[EscrowHold, int]:
        hold = self.holds.get(hold_id)
        if hold is None:
            raise EscrowHoldNotFoundError(hold_id)
        if hold.status != "held":
            raise EscrowOverreleaseError(hold_id, hold.remaining, 0)
        refunded = hold.amount - hold.released_amount
        hold = replace(hold, refunded_amount=refunded, status="refunded", closed_at=_now())
        self.holds[hold_id] = hold
        return replace(hold), refunded

    async def get(self, db: Any, hold_id: str) -> EscrowHold | None:
        hold = self.holds.get(hold_id)
        return replace(hold) if hold else None


class FakePaymentRepository:
    def __init__(self) -> None:
        self.rows: dict[str, PaymentRecord] = {}

    async def insert(self, db: Any, record: PaymentRecord) -> PaymentRecord | None:
        if record.external_payment_id in self.rows:
            return None
        stored = replace(record, created_at=_now())
        self.rows[record.external_payment_id] = stored
        return replace(stored)

    async def get_by_external_payment_id(
        self, db: Any, external_payment_id: str
    ) -> PaymentRecord | None:
        await asyncio.sleep(0)
        row = self.rows.get(external_payment_id)
        return replace(row) if row else None

    async def get_by_collaboration(self, db: Any, collaboration_id: str) -> PaymentRecord | None:
        for row in self.rows.values():
            if row.collaboration_id == collaboration_id:
                return replace(row)
        return None


class RecordingPublisher:
    def __init__(self) -> None:
        self.published: list[tuple[str, list[FlowStateChanged | Milestone]]] = []

    async def publish(
        self, collaboration_id: str, events: list[FlowStateChanged | Milestone]
    ) -> None:
        self.published.append((collaboration_id, list(events)))

    def milestones(self) -> list[str]:
        return [
            e.milestone for _, events in self.published for e in events
            if isinstance(e, Milestone)
        ]


class World:
    """FlowService wired to fresh fakes, plus handles on every store."""

    def __init__(self, rate_bps: int | None = 1000) -> None:
        self.db = make_db()
        self.commission_repo = FakeCommissionRepository(rate_bps)
        self.commission = CommissionSettingsService(repo=self.commission_repo)
        self.collaborations = FakeCollaborationRepository()
        self.settlements = FakeSettlementRepository(self.collaborations)
        self.ledger = FakeLedgerRepository()
        self.escrow = FakeEscrowRepository()
        self.payments = FakePaymentRepository()
        self.publisher = RecordingPublisher()
        self.tracker = SettlementTracker(
            settlements=self.settlements,
            ledger=self.ledger,
            escrow=self.escrow,
            payments=self.payments,
            commission=self.commission,
        )
        self.release = AdminReleaseWorkflow(
            settlements=self.settlements, ledger=self.ledger, escrow=self.escrow
        )
        self.flow = FlowService(
            repo=self.collaborations,
            tracker=self.tracker,
            release=self.release,
            settlements=self.settlements,
            publisher=self.publisher,
        )

    def balance(self, owner_id: str) -> int:
        wallet = self.ledger.wallets.get(owner_id)
        return wallet.balance if wallet else 0


@pytest.fixture
def world() -> World:
    """Services over empty fakes with an active 10% commission rate."""
    return World()


@pytest.fixture
def world_factory() -> Callable[..., World]:
    return World
