"""Shared coercion helpers for request payloads and ledger values.

parse_date:     ISO / DD.MM.YYYY string → date (None on bad input)
to_decimal:     number or numeric string → Decimal (raises ValidationError)
quantize:       round a Decimal to cents / hundredths
decimal_str:    Decimal → JSON-safe string (None passes through)
"""
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from app.core.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0")


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def to_decimal(value, field: str) -> Decimal:
    """Coerce *value* to Decimal, going through ``str`` so floats keep their
    printed form (``0.1`` → ``Decimal("0.1")``).

    Raises:
        ValidationError: value is missing, boolean, or not numeric.
    """
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError(f"{field} is required", details={"field": field})
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be a number", details={"field": field}) from None
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", details={"field": field})
    return result


def quantize(value: Decimal) -> Decimal:
    """Round half-up to two decimal places."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def decimal_str(value):
    """Serialise a Decimal for JSON; ``None`` stays ``None``."""
    if value is None:
        return None
    return str(quantize(Decimal(str(value))))
