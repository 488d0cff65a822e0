"""Decimal money helpers shared by the split and settlement engines."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")

# Tolerance used for every "is this paid off / is money left" comparison.
EPSILON = Decimal("0.01")


def to_cents(amount: Decimal | float | int | str) -> Decimal:
    """
    Round an amount to whole cents.
    Uses ROUND_HALF_UP for consistency.

    Args:
        amount: Amount in dollars

    Returns:
        Decimal quantized to two fractional digits
    """
    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value: object) -> Decimal | None:
    """Parse a numeric literal, returning None when it is not a finite number."""
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed


def is_paid_off(paid: Decimal, owed: Decimal) -> bool:
    """An item is settled once paid reaches the owed amount within a cent."""
    return paid >= owed - EPSILON
