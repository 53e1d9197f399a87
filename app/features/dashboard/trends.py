"""Period-over-period trend direction and rate badge classification.

Both functions are metric-agnostic: trends work on counts, sums and ratios
alike, and the classifier takes its thresholds from configuration.
"""

from collections.abc import Sequence
from decimal import Decimal

from app.features.dashboard.config import ThresholdPair
from app.features.dashboard.schemas import RateStatus, Trend

Number = int | float | Decimal


def trend(current: Number | None, previous: Number | None) -> Trend:
    """Direction of ``current`` relative to ``previous``.

    FLAT when there is no previous value or the values are equal, UP when
    current is larger, DOWN otherwise; a missing current value is DOWN.

    Args:
        current: Value of the current period.
        previous: Value of the previous period.

    Returns:
        Trend direction.
    """
    if previous is None or current == previous:
        return Trend.FLAT
    if current is not None and current > previous:
        return Trend.UP
    return Trend.DOWN


def series_trends(values: Sequence[Number | None]) -> list[Trend]:
    """Trend of each element against its predecessor; the first is FLAT."""
    return [
        trend(value, values[index - 1] if index > 0 else None)
        for index, value in enumerate(values)
    ]


def classify_rate(value: float | None, thresholds: ThresholdPair) -> RateStatus:
    """Classify a rate against a descending [high, low] pair.

    Args:
        value: Rate in percent, None when undefined.
        thresholds: Pair where ``high >= low``.

    Returns:
        GOOD at or above high, WARN at or above low, BAD below low,
        UNDEFINED when the rate itself is undefined.
    """
    if value is None:
        return RateStatus.UNDEFINED
    if value >= thresholds.high:
        return RateStatus.GOOD
    if value >= thresholds.low:
        return RateStatus.WARN
    return RateStatus.BAD
