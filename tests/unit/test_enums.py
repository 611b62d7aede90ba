"""Tests for cs_common.enums: every value must be allowed by the migration CHECKs."""

from enum import Enum
from pathlib import Path

import pytest

from src.cs_common.enums import (
    ActorKind,
    AdvanceStatus,
    EscrowStatus,
    FinalStatus,
    FlowState,
    LedgerDirection,
    LedgerStage,
    LedgerStatus,
    Role,
)

_VERSIONS = Path(__file__).resolve().parents[2] / "alembic" / "versions"


def _migration(prefix: str) -> str:
    (path,) = _VERSIONS.glob(f"{prefix}_*.py")
    return path.read_text(encoding="utf-8")


class TestAllEnumsAreStr:
    @pytest.mark.parametrize(
        "enum_cls",
        [FlowState, Role, ActorKind, AdvanceStatus, FinalStatus, EscrowStatus,
         LedgerDirection, LedgerStage, LedgerStatus],
    )
    def test_members_compare_equal_to_value(self, enum_cls: type[Enum]) -> None:
        for member in enum_cls:
            assert isinstance(member, str)
            assert member == member.value


class TestEnumsMatchCheckConstraints:
    @pytest.mark.parametrize(
        ("enum_cls", "migration"),
        [
            (FlowState, "003"),
            (ActorKind, "003"),
            (AdvanceStatus, "004"),
            (FinalStatus, "004"),
            (EscrowStatus, "004"),
            (LedgerDirection, "005"),
            (LedgerStage, "005"),
            (LedgerStatus, "005"),
        ],
    )
    def test_every_value_is_allowed(self, enum_cls: type[Enum], migration: str) -> None:
        sql = _migration(migration)
        for member in enum_cls:
            assert f"'{member.value}'" in sql, f"{enum_cls.__name__}.{member.name}"

    def test_awaiting_role_excludes_system(self) -> None:
        sql = _migration("003")
        assert "awaiting_role IN ('payer', 'payee', 'admin')" in sql


class TestFlowStateOrder:
    def test_happy_path_order(self) -> None:
        assert [s.value for s in FlowState][:8] == [
            "negotiating",
            "price_agreed",
            "awaiting_payment",
            "admin_advance_pending",
            "work_in_progress",
            "work_submitted",
            "work_approved",
            "closed",
        ]

    def test_terminal_extras(self) -> None:
        assert FlowState("cancelled") is FlowState.CANCELLED
        assert FlowState("refunded") is FlowState.REFUNDED
