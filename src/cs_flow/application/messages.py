"""Human-readable milestone texts posted to the collaboration's conversation."""

from src.cs_common.minor_units import bps_to_percent_display, to_display
from src.cs_settlement.domain.models import SettlementRecord


def payment_breakdown(record: SettlementRecord) -> str:
    return (
        f"Payment of {to_display(record.total_amount)} received and held in escrow. "
        f"Platform commission {to_display(record.commission_amount)} "
        f"({bps_to_percent_display(record.commission_rate_bps)}). "
        f"Advance {to_display(record.advance_amount)} will be released after admin "
        f"confirmation; final {to_display(record.final_amount)} after the work is approved."
    )


def advance_released(record: SettlementRecord) -> str:
    return (
        f"Advance of {to_display(record.advance_amount)} has been released. "
        "Work can now begin."
    )


def final_released(record: SettlementRecord) -> str:
    return (
        f"Final payment of {to_display(record.final_amount)} has been released. "
        f"Total paid out: {to_display(record.net_amount)}. Collaboration closed."
    )


def refunded(record: SettlementRecord, amount: int) -> str:
    text = f"{to_display(amount)} has been refunded to the payer."
    if record.refund_reason:
        text += f" Reason: {record.refund_reason}"
    return text
