"""Commission / advance / final split.

Integer-only arithmetic on minor units. The rate is given in basis points
(1000 bps = 10%), which keeps a two-decimal percent exact without floats.

    commission = round_half_up(total * rate / 100)
    net        = total - commission
    advance    = floor(net * 30 / 100)
    final      = net - advance

`final` is derived, never computed independently, so
commission + advance + final == total for every input.
"""

from src.cs_commission.domain.models import CommissionBreakdown

BPS_DENOMINATOR = 10_000
MAX_RATE_BPS = BPS_DENOMINATOR
ADVANCE_PERCENT = 30


def calc_commission(total_amount: int, rate_bps: int) -> int:
    """Half-up rounding: (total x bps + 5000) // 10000."""
    return (total_amount * rate_bps + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR


def calculate_breakdown(total_amount: int, commission_rate_bps: int) -> CommissionBreakdown:
    if isinstance(total_amount, bool) or not isinstance(total_amount, int):
        raise ValueError(f"total_amount must be an integer, got {total_amount!r}")
    if total_amount <= 0:
        raise ValueError(f"total_amount must be positive, got {total_amount}")
    if isinstance(commission_rate_bps, bool) or not isinstance(commission_rate_bps, int):
        raise ValueError(f"commission_rate_bps must be an integer, got {commission_rate_bps!r}")
    if not 0 <= commission_rate_bps <= MAX_RATE_BPS:
        raise ValueError(f"commission_rate_bps must be 0-{MAX_RATE_BPS}, got {commission_rate_bps}")

    commission = calc_commission(total_amount, commission_rate_bps)
    net = total_amount - commission
    advance = net * ADVANCE_PERCENT // 100
    return CommissionBreakdown(
        total_amount=total_amount,
        commission_rate_bps=commission_rate_bps,
        commission_amount=commission,
        net_amount=net,
        advance_amount=advance,
        final_amount=net - advance,
    )
