"""Integer arithmetic utilities for minor-currency amounts.

All amounts and balances use int (minor units, e.g. paise). No float, no Decimal.
"""

from config.settings import settings


def validate_amount(amount: int) -> None:
    """Validate that amount is a positive integer number of minor units."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"Amount must be an integer number of minor units, got {amount!r}")
    if amount <= 0:
        raise ValueError(f"Amount must be positive, got {amount}")


def to_display(minor: int, symbol: str | None = None) -> str:
    """Convert minor units to display string: 270000 -> '₹2,700.00', -1200 -> '-₹12.00'."""
    sym = settings.CURRENCY_SYMBOL if symbol is None else symbol
    if minor < 0:
        abs_minor = -minor
        return f"-{sym}{abs_minor // 100:,}.{abs_minor % 100:02d}"
    return f"{sym}{minor // 100:,}.{minor % 100:02d}"


def bps_to_percent_display(rate_bps: int) -> str:
    """Basis points to a percent string: 1000 -> '10%', 1250 -> '12.5%'."""
    whole, frac = divmod(rate_bps, 100)
    if frac == 0:
        return f"{whole}%"
    return f"{whole}.{frac:02d}".rstrip("0") + "%"
