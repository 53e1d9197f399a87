"""Display formatting for dashboard figures.

Rounding is half-up to match the figures finance reports use, never banker's rounding.
"""

from decimal import ROUND_HALF_UP, Decimal

EMPTY = "-"

_COMPACT_STEPS = (
    (Decimal("1e9"), "B", 1),
    (Decimal("1e6"), "M", 1),
    (Decimal("1e3"), "K", 0),
)


def _quantize(value: Decimal, ndigits: int) -> Decimal:
    return value.quantize(Decimal(10) ** -ndigits, rounding=ROUND_HALF_UP)


def format_count(value: int | None) -> str:
    """Thousands-separated count, e.g. ``12,345``."""
    if value is None:
        return EMPTY
    return f"{value:,}"


def format_percent(value: float | None, ndigits: int = 1) -> str:
    """Percentage with one decimal by default, e.g. ``53.3%``."""
    if value is None:
        return EMPTY
    return f"{_quantize(Decimal(str(value)), ndigits)}%"


def format_badge_percent(value: float | None) -> str:
    """Whole-number percentage shown inside rate badges."""
    return format_percent(value, ndigits=0)


def format_currency(value: Decimal | float | int | None) -> str:
    """Compact currency: ``4.0M``, ``950K``, ``1.2B``; ``-`` for zero or None.

    Thresholds are 1e3/1e6/1e9 with one decimal for M and B, none for K.
    Smaller values keep thousands separators.
    """
    if not value:
        return EMPTY
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    for threshold, suffix, ndigits in _COMPACT_STEPS:
        if amount >= threshold:
            return f"{_quantize(amount / threshold, ndigits)}{suffix}"
    return f"{_quantize(amount, 2).normalize():,f}"
