"""
Hours-based progress arithmetic.

Pure functions: no state, no I/O. Everything the reconciliation service
reports as "calculated progress" goes through ``calculated_progress``.

    calculated_progress(h, p) = min(100, round(h / p * 100, 2))
    calculated_progress(h, 0) = 0
"""

from decimal import ROUND_HALF_UP, Decimal

HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


def _dec(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value)) if value is not None else Decimal("0")


def calculated_progress(hours_logged, predicted_hours) -> Decimal:
    """Percentage of the hours budget consumed, capped at 100.

    A zero (or missing) budget yields 0 rather than a division error.
    """
    hours = _dec(hours_logged)
    predicted = _dec(predicted_hours)
    if predicted <= 0:
        return Decimal("0.00")
    pct = (hours / predicted * HUNDRED).quantize(_CENT, rounding=ROUND_HALF_UP)
    return min(HUNDRED.quantize(_CENT), pct)


def variance(actual, calculated) -> Decimal:
    """Drift introduced by a manual override: actual minus calculated."""
    return (_dec(actual) - _dec(calculated)).quantize(_CENT, rounding=ROUND_HALF_UP)


def clamp_percentage(value) -> Decimal:
    """Clamp to [0, 100] at two decimal places."""
    pct = _dec(value).quantize(_CENT, rounding=ROUND_HALF_UP)
    return max(Decimal("0.00"), min(HUNDRED.quantize(_CENT), pct))
