from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .services.errors import InvalidPayloadError


def to_cents(value) -> int:
    """
    Convert a dollar amount ("49.99", 49.99, 50) to integer cents, half-up.

    Floats go through str() first so 0.1 + 0.2 style noise is not carried in.
    """
    if value is None or isinstance(value, bool):
        raise InvalidPayloadError("Amount is required")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidPayloadError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise InvalidPayloadError(f"Invalid amount: {value!r}")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}${cents // 100:,}.{cents % 100:02d}"
