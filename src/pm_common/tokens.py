"""Token display helpers.

Token amounts are whole tokens on the commitment path; balance aggregates
may carry fractions because total_spent accumulates USD. Display rounding is
half-up (3250 -> "3.3K"), never banker's rounding.
"""

from decimal import ROUND_HALF_UP, Decimal

_ONE_DP = Decimal("0.1")
_TWO_DP = Decimal("0.01")


def _half_up(value: float, quantum: Decimal) -> Decimal:
    # str() first so 3.25 stays 3.25 instead of 3.24999...
    return Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_tokens(amount: float) -> str:
    """Compact token display.

    >>> format_tokens(2500)
    '2.5K'
    >>> format_tokens(999)
    '999'
    >>> format_tokens(1_250_000)
    '1.3M'
    """
    sign = "-" if amount < 0 else ""
    value = abs(amount)
    if value >= 1_000_000:
        return f"{sign}{_half_up(value / 1_000_000, _ONE_DP)}M"
    if value >= 1_000:
        return f"{sign}{_half_up(value / 1_000, _ONE_DP)}K"
    if float(value).is_integer():
        return f"{sign}{int(value)}"
    return f"{sign}{_half_up(value, _ONE_DP)}"


def format_odds(odds: float) -> str:
    """1.6 -> '1.60x'"""
    return f"{_half_up(odds, _TWO_DP)}x"


def format_percentage(value: float) -> str:
    """0.125 -> '12.5%'"""
    return f"{_half_up(value * 100, _ONE_DP)}%"


def format_usd(amount: float) -> str:
    """Format a USD amount: 1234.5 -> '$1,234.50'"""
    quantized = _half_up(abs(amount), _TWO_DP)
    sign = "-" if amount < 0 else ""
    return f"{sign}${quantized:,.2f}"


def is_valid_token_amount(amount: object) -> bool:
    """Positive whole number of tokens. Booleans and floats with fractions are rejected."""
    if isinstance(amount, bool):
        return False
    if isinstance(amount, int):
        return amount > 0
    if isinstance(amount, float):
        return amount.is_integer() and amount > 0
    return False
