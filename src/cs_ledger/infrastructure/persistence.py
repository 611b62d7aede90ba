"""LedgerRepository: concrete implementation of LedgerRepositoryProtocol.

Idempotency is enforced by the UNIQUE index on ledger_entries.idempotency_key
(INSERT ... ON CONFLICT DO NOTHING). Confirmation is a compare-and-swap
UPDATE on status; a result of 0 rows means the entry is unknown or no longer
pending. Wallet balances move only in the same transaction as a completed
entry, via a single upsert that adds a signed delta.

Transaction ownership: the CALLER (application service) commits or rolls back.
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_common.enums import LedgerDirection
from src.cs_common.errors import (
    AlreadyConfirmedError,
    IdempotencyConflictError,
    InternalError,
    LedgerEntryNotFoundError,
)
from src.cs_common.minor_units import validate_amount
from src.cs_ledger.domain.models import CreditResult, LedgerEntry, Wallet

logger = logging.getLogger(__name__)

_ENTRY_COLUMNS = """id, payee_id, amount, direction, stage, status, idempotency_key,
              settlement_id, description, created_at, completed_at"""

_INSERT_COMPLETED_SQL = text(f"""
    INSERT INTO ledger_entries
        (payee_id, amount, direction, stage, status, idempotency_key,
         settlement_id, description, completed_at)
    VALUES
        (:payee_id, :amount, :direction, :stage, 'completed', :idempotency_key,
         :settlement_id, :description, NOW())
    ON CONFLICT (idempotency_key) DO NOTHING
    RETURNING {_ENTRY_COLUMNS}
""")

_INSERT_PENDING_SQL = text(f"""
    INSERT INTO ledger_entries
        (payee_id, amount, direction, stage, status, idempotency_key,
         settlement_id, description)
    VALUES
        (:payee_id, :amount, :direction, :stage, 'pending', :idempotency_key,
         :settlement_id, :description)
    ON CONFLICT (idempotency_key) DO NOTHING
    RETURNING {_ENTRY_COLUMNS}
""")

_CONFIRM_SQL = text(f"""
    UPDATE ledger_entries
    SET status = 'completed',
        completed_at = NOW()
    WHERE id = :entry_id AND status = 'pending'
    RETURNING {_ENTRY_COLUMNS}
""")

_CANCEL_PENDING_SQL = text("""
    UPDATE ledger_entries
    SET status = 'cancelled'
    WHERE settlement_id = :settlement_id AND status = 'pending'
    RETURNING id
""")

_GET_BY_ID_SQL = text(f"""
    SELECT {_ENTRY_COLUMNS}
    FROM ledger_entries
    WHERE id = :entry_id
""")

_GET_BY_KEY_SQL = text(f"""
    SELECT {_ENTRY_COLUMNS}
    FROM ledger_entries
    WHERE idempotency_key = :idempotency_key
""")

_LIST_SQL = text(f"""
    SELECT {_ENTRY_COLUMNS}
    FROM ledger_entries
    WHERE payee_id = :payee_id
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < :cursor_id)
      AND (CAST(:stage AS TEXT) IS NULL OR stage = :stage)
    ORDER BY id DESC
    LIMIT :limit
""")

_APPLY_DELTA_SQL = text("""
    INSERT INTO wallets (payee_id, balance, version, updated_at)
    VALUES (:payee_id, :delta, 1, NOW())
    ON CONFLICT (payee_id) DO UPDATE
        SET balance = wallets.balance + EXCLUDED.balance,
            version = wallets.version + 1,
            updated_at = NOW()
    RETURNING payee_id, balance, version, updated_at
""")

_GET_WALLET_SQL = text("""
    SELECT payee_id, balance, version, updated_at
    FROM wallets
    WHERE payee_id = :payee_id
""")


def _row_to_entry(row: object) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,  # type: ignore[attr-defined]
        payee_id=row.payee_id,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        direction=row.direction,  # type: ignore[attr-defined]
        stage=row.stage,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        idempotency_key=row.idempotency_key,  # type: ignore[attr-defined]
        settlement_id=row.settlement_id,  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        completed_at=row.completed_at,  # type: ignore[attr-defined]
    )


def _row_to_wallet(row: object) -> Wallet:
    return Wallet(
        payee_id=row.payee_id,  # type: ignore[attr-defined]
        balance=row.balance,  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _same_operation(entry: LedgerEntry, payee_id: str, amount: int, stage: str) -> bool:
    return entry.payee_id == payee_id and entry.amount == amount and entry.stage == stage


class LedgerRepository:
    """Concrete repository: every mutation is atomic at the SQL level."""

    async def _apply_delta(self, db: AsyncSession, payee_id: str, delta: int) -> Wallet:
        result = await db.execute(_APPLY_DELTA_SQL, {"payee_id": payee_id, "delta": delta})
        row = result.fetchone()
        if row is None:
            raise InternalError("Wallet upsert returned no rows")
        return _row_to_wallet(row)

    async def _get_by_key(self, db: AsyncSession, idempotency_key: str) -> LedgerEntry | None:
        result = await db.execute(_GET_BY_KEY_SQL, {"idempotency_key": idempotency_key})
        row = result.fetchone()
        return _row_to_entry(row) if row else None

    async def credit(
        self,
        db: AsyncSession,
        payee_id: str,
        amount: int,
        stage: str,
        idempotency_key: str,
        settlement_id: str | None = None,
        description: str | None = None,
    ) -> CreditResult:
        """Insert a completed credit and bump the wallet, once per idempotency key."""
        validate_amount(amount)
        result = await db.execute(
            _INSERT_COMPLETED_SQL,
            {
                "payee_id": payee_id,
                "amount": amount,
                "direction": LedgerDirection.CREDIT.value,
                "stage": stage,
                "idempotency_key": idempotency_key,
                "settlement_id": settlement_id,
                "description": description,
            },
        )
        row = result.fetchone()
        if row is not None:
            entry = _row_to_entry(row)
            wallet = await self._apply_delta(db, payee_id, entry.signed_amount)
            return CreditResult(entry=entry, wallet=wallet, applied=True)

        existing = await self._get_by_key(db, idempotency_key)
        if (
            existing is None
            or not existing.is_completed
            or not _same_operation(existing, payee_id, amount, stage)
        ):
            raise IdempotencyConflictError(idempotency_key)
        logger.info("Duplicate credit absorbed: key=%s entry=%d", idempotency_key, existing.id)
        return CreditResult(entry=existing, wallet=None, applied=False)

    async def reserve(
        self,
        db: AsyncSession,
        payee_id: str,
        amount: int,
        stage: str,
        idempotency_key: str,
        settlement_id: str | None = None,
        description: str | None = None,
    ) -> LedgerEntry:
        """Insert a pending placeholder. No balance change."""
        validate_amount(amount)
        result = await db.execute(
            _INSERT_PENDING_SQL,
            {
                "payee_id": payee_id,
                "amount": amount,
                "direction": LedgerDirection.CREDIT.value,
                "stage": stage,
                "idempotency_key": idempotency_key,
                "settlement_id": settlement_id,
                "description": description,
            },
        )
        row = result.fetchone()
        if row is not None:
            return _row_to_entry(row)

        existing = await self._get_by_key(db, idempotency_key)
        if existing is None or not _same_operation(existing, payee_id, amount, stage):
            raise IdempotencyConflictError(idempotency_key)
        return existing

    async def confirm(self, db: AsyncSession, entry_id: int) -> tuple[LedgerEntry, Wallet]:
        """pending -> completed, then apply the balance change."""
        result = await db.execute(_CONFIRM_SQL, {"entry_id": entry_id})
        row = result.fetchone()
        if row is None:
            current = await self.get_entry(db, entry_id)
            if current is None:
                raise LedgerEntryNotFoundError(entry_id)
            raise AlreadyConfirmedError(f"ledger entry {entry_id} is {current.status}")
        entry = _row_to_entry(row)
        wallet = await self._apply_delta(db, entry.payee_id, entry.signed_amount)
        return entry, wallet

    async def cancel_pending(self, db: AsyncSession, settlement_id: str) -> list[int]:
        result = await db.execute(_CANCEL_PENDING_SQL, {"settlement_id": settlement_id})
        return [row.id for row in result.fetchall()]

    async def get_entry(self, db: AsyncSession, entry_id: int) -> LedgerEntry | None:
        result = await db.execute(_GET_BY_ID_SQL, {"entry_id": entry_id})
        row = result.fetchone()
        return _row_to_entry(row) if row else None

    async def get_wallet(self, db: AsyncSession, payee_id: str) -> Wallet | None:
        result = await db.execute(_GET_WALLET_SQL, {"payee_id": payee_id})
        row = result.fetchone()
        return _row_to_wallet(row) if row else None

    async def list_entries(
        self,
        db: AsyncSession,
        payee_id: str,
        cursor_id: int | None,
        limit: int,
        stage: str | None,
    ) -> list[LedgerEntry]:
        result = await db.execute(
            _LIST_SQL,
            {
                "payee_id": payee_id,
                "cursor_id": cursor_id,
                "stage": stage,
                "limit": limit,
            },
        )
        return [_row_to_entry(row) for row in result.fetchall()]

