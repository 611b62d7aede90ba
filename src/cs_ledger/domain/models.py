"""Domain models for cs_ledger: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime

from src.cs_common.enums import LedgerDirection, LedgerStatus


@dataclass
class LedgerEntry:
    id: int                          # BIGSERIAL
    payee_id: str                    # wallet owner
    amount: int                      # minor units, always positive
    direction: str                   # LedgerDirection value
    stage: str                       # LedgerStage value
    status: str                      # LedgerStatus value
    idempotency_key: str
    settlement_id: str | None = None
    description: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def signed_amount(self) -> int:
        return self.amount if self.direction == LedgerDirection.CREDIT else -self.amount

    @property
    def is_completed(self) -> bool:
        return self.status == LedgerStatus.COMPLETED


@dataclass
class Wallet:
    payee_id: str
    balance: int                     # minor units, never negative
    version: int = 0
    updated_at: datetime | None = None


@dataclass
class CreditResult:
    entry: LedgerEntry
    wallet: Wallet | None
    applied: bool                    # False when an idempotent retry was absorbed
