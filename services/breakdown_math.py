"""
Per-variant quantity arithmetic.

A breakdown is a list of Decimals indexed by size/variant slot. Sources
disagree on length (an order with 5 sizes, an activity that only recorded
3), so every operation here pads the shorter side with zeros. Callers never
pad on their own.

All functions are pure and never raise: unusable values degrade to zero.
"""

from decimal import Decimal
from typing import Any, Iterable, Optional

from utils.number_utils import ZERO, to_quantity

__all__ = [
    "to_quantity",
    "pad",
    "add_into",
    "add",
    "min_arrays",
    "max_arrays",
    "subtract_floor",
    "clamp",
    "sum_array",
    "has_any",
    "normalize",
    "zeros",
]


def _as_list(arr: Optional[Iterable[Any]]) -> list[Decimal]:
    if arr is None:
        return []
    return [to_quantity(value) for value in arr]


def pad(arr: Optional[Iterable[Any]], length: int) -> list[Decimal]:
    """Copy of arr extended with zeros to at least `length` slots."""
    values = _as_list(arr)
    if len(values) < length:
        values.extend([ZERO] * (length - len(values)))
    return values


def zeros(length: int) -> list[Decimal]:
    return [ZERO] * max(length, 0)


def add_into(target: list[Decimal], source: Optional[Iterable[Any]]) -> list[Decimal]:
    """
    Accumulate source into target in place, growing target as needed.

    Returns target for chaining.
    """
    values = _as_list(source)
    if len(target) < len(values):
        target.extend([ZERO] * (len(values) - len(target)))
    for index, value in enumerate(values):
        target[index] = to_quantity(target[index]) + value
    return target


def add(a: Optional[Iterable[Any]], b: Optional[Iterable[Any]]) -> list[Decimal]:
    return add_into(_as_list(a), b)


def _pairwise(a, b):
    left = _as_list(a)
    right = _as_list(b)
    length = max(len(left), len(right))
    return zip(pad(left, length), pad(right, length))


def min_arrays(a: Optional[Iterable[Any]], b: Optional[Iterable[Any]]) -> list[Decimal]:
    """Element-wise minimum; a missing slot counts as 0."""
    return [min(x, y) for x, y in _pairwise(a, b)]


def max_arrays(a: Optional[Iterable[Any]], b: Optional[Iterable[Any]]) -> list[Decimal]:
    """Element-wise maximum; a missing slot counts as 0."""
    return [max(x, y) for x, y in _pairwise(a, b)]


def subtract_floor(a: Optional[Iterable[Any]], b: Optional[Iterable[Any]]) -> list[Decimal]:
    """Element-wise max(a - b, 0)."""
    return [max(x - y, ZERO) for x, y in _pairwise(a, b)]


def clamp(arr: Optional[Iterable[Any]]) -> list[Decimal]:
    """Replace negatives with 0."""
    return [value if value > 0 else ZERO for value in _as_list(arr)]


def sum_array(arr: Optional[Iterable[Any]]) -> Decimal:
    return sum(_as_list(arr), ZERO)


def has_any(arr: Optional[Iterable[Any]]) -> bool:
    """True when at least one slot is positive."""
    return any(value > 0 for value in _as_list(arr))


def normalize(raw: Any, fallback_scalar: Any = 0, allow_fallback: bool = True) -> list[Decimal]:
    """
    Turn an activity's breakdown into a usable vector.

    - Non-empty list: each entry coerced to a finite, non-negative Decimal
    - Otherwise, if allowed and the scalar is positive: [scalar]
      (activity recorded a quantity but no per-variant detail)
    - Otherwise: []

    Args:
        raw: Stored breakdown (list, None or junk)
        fallback_scalar: Activity quantity
        allow_fallback: Whether the scalar may stand in for a missing breakdown

    Returns:
        Breakdown
    """
    if isinstance(raw, (list, tuple)) and len(raw) > 0:
        return clamp(raw)

    scalar = to_quantity(fallback_scalar)
    if allow_fallback and scalar > 0:
        return [scalar]
    return []
