"""Settlement invariant verification.

Per record (checked at open):
  INV-S1: commission + net == total
  INV-S2: advance + final == net
  INV-S3: every amount >= 0

Across the store (admin check):
  INV-E:  released + refunded <= amount for every escrow hold, and == amount once closed
  INV-W:  every wallet balance == sum of its completed ledger entries
  INV-L:  a confirmed advance/final has a completed ledger entry
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_settlement.domain.models import SettlementRecord

logger = logging.getLogger(__name__)

_BAD_BREAKDOWN_SQL = text("""
    SELECT id, total_amount, commission_amount, net_amount, advance_amount, final_amount
    FROM settlements
    WHERE commission_amount + net_amount <> total_amount
       OR advance_amount + final_amount <> net_amount
""")

_BAD_ESCROW_SQL = text("""
    SELECT id, amount, released_amount, refunded_amount, status
    FROM escrow_holds
    WHERE released_amount + refunded_amount > amount
       OR (status <> 'held' AND released_amount + refunded_amount <> amount)
""")

_BAD_WALLET_SQL = text("""
    SELECT w.payee_id, w.balance, COALESCE(e.total, 0) AS ledger_total
    FROM wallets w
    LEFT JOIN (
        SELECT payee_id,
               SUM(CASE WHEN direction = 'credit' THEN amount ELSE -amount END) AS total
        FROM ledger_entries
        WHERE status = 'completed'
        GROUP BY payee_id
    ) e ON e.payee_id = w.payee_id
    WHERE w.balance <> COALESCE(e.total, 0)
""")

_BAD_CONFIRMATION_SQL = text("""
    SELECT s.id, 'advance' AS stage
    FROM settlements s
    JOIN ledger_entries l ON l.id = s.advance_entry_id
    WHERE s.advance_status = 'confirmed' AND l.status <> 'completed'
    UNION ALL
    SELECT s.id, 'final' AS stage
    FROM settlements s
    JOIN ledger_entries l ON l.id = s.final_entry_id
    WHERE s.final_status = 'confirmed' AND l.status <> 'completed'
""")


def check_breakdown(record: SettlementRecord) -> list[str]:
    violations: list[str] = []
    if record.commission_amount + record.net_amount != record.total_amount:
        violations.append(
            f"INV-S1 violated on {record.id}: commission({record.commission_amount}) + "
            f"net({record.net_amount}) != total({record.total_amount})"
        )
    if record.advance_amount + record.final_amount != record.net_amount:
        violations.append(
            f"INV-S2 violated on {record.id}: advance({record.advance_amount}) + "
            f"final({record.final_amount}) != net({record.net_amount})"
        )
    amounts = (
        record.commission_amount, record.net_amount, record.advance_amount, record.final_amount,
    )
    if min(amounts) < 0:
        violations.append(f"INV-S3 violated on {record.id}: negative amount in {amounts}")
    return violations


async def verify_global_invariants(db: AsyncSession) -> list[str]:
    """Run every store-wide check. Returns a list of violation strings."""
    violations: list[str] = []

    for row in (await db.execute(_BAD_BREAKDOWN_SQL)).fetchall():
        violations.append(
            f"INV-S violated on settlement {row.id}: total={row.total_amount} "
            f"commission={row.commission_amount} net={row.net_amount} "
            f"advance={row.advance_amount} final={row.final_amount}"
        )
    for row in (await db.execute(_BAD_ESCROW_SQL)).fetchall():
        violations.append(
            f"INV-E violated on hold {row.id} ({row.status}): released={row.released_amount} "
            f"+ refunded={row.refunded_amount} vs amount={row.amount}"
        )
    for row in (await db.execute(_BAD_WALLET_SQL)).fetchall():
        violations.append(
            f"INV-W violated on wallet {row.payee_id}: balance={row.balance} "
            f"!= completed ledger total={row.ledger_total}"
        )
    for row in (await db.execute(_BAD_CONFIRMATION_SQL)).fetchall():
        violations.append(
            f"INV-L violated on settlement {row.id}: {row.stage} confirmed "
            "but its ledger entry is not completed"
        )

    for msg in violations:
        logger.error(msg)
    return violations
