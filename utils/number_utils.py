"""
Numeric coercion helpers.

Quantities arrive from many sources (JSON breakdowns, ORM decimals, form
strings). Everything is funneled through to_quantity() so that malformed
values degrade to zero instead of raising. Optional fields (overrides, PO
line quantities) use to_optional_quantity(), where malformed means unknown.
"""

import math
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

ZERO = Decimal("0")


def parse_quantity(value: Any) -> Optional[Decimal]:
    """
    Parse a raw value into a finite Decimal.

    - bools count as numbers (True → 1), mirroring loose JSON payloads
    - None, blank or unparseable strings, NaN and infinities → None

    Args:
        value: Raw quantity

    Returns:
        Finite Decimal (may be negative), or None
    """
    if value is None:
        return None

    if isinstance(value, Decimal):
        return value if value.is_finite() else None

    if isinstance(value, bool):
        return Decimal(int(value))

    if isinstance(value, int):
        return Decimal(value)

    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return Decimal(str(value))

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None

    return None


def to_quantity(value: Any) -> Decimal:
    """Coerce any value to a finite Decimal; anything unparseable → 0."""
    parsed = parse_quantity(value)
    return ZERO if parsed is None else parsed


def to_non_negative(value: Any) -> Decimal:
    """Coerce to a finite Decimal and clamp negatives to zero."""
    qty = to_quantity(value)
    return qty if qty > 0 else ZERO


def to_optional_quantity(value: Any) -> Optional[Decimal]:
    """Like to_quantity(), but None, junk and non-finite values stay None (unknown)."""
    return parse_quantity(value)


def format_qty(value: Any) -> str:
    """
    Format a quantity for human-readable messages.

    Rounded to 2 decimals, trailing zeros dropped:
    - Decimal("12.500") → "12.5"
    - 30 → "30"
    """
    qty = to_quantity(value).quantize(Decimal("0.01"))
    text = format(qty, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
