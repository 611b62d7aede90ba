"""Pydantic schemas for wallet / ledger API."""

from pydantic import BaseModel

from src.cs_common.datetime_utils import iso_or_none
from src.cs_common.minor_units import to_display
from src.cs_ledger.domain.models import LedgerEntry


class WalletResponse(BaseModel):
    payee_id: str
    balance: int
    balance_display: str

    @classmethod
    def from_balance(cls, payee_id: str, balance: int) -> "WalletResponse":
        return cls(payee_id=payee_id, balance=balance, balance_display=to_display(balance))


class LedgerEntryItem(BaseModel):
    id: int
    amount: int
    amount_display: str
    direction: str
    stage: str
    status: str
    settlement_id: str | None
    description: str | None
    created_at: str | None
    completed_at: str | None

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> "LedgerEntryItem":
        return cls(
            id=entry.id,
            amount=entry.amount,
            amount_display=to_display(entry.signed_amount),
            direction=entry.direction,
            stage=entry.stage,
            status=entry.status,
            settlement_id=entry.settlement_id,
            description=entry.description,
            created_at=iso_or_none(entry.created_at),
            completed_at=iso_or_none(entry.completed_at),
        )


class LedgerResponse(BaseModel):
    items: list[LedgerEntryItem]
    next_cursor: str | None
    has_more: bool
