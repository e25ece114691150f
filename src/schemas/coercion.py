"""Lenient numeric parsing for user-entered and rule-authored values.

Quote editors send whatever the form holds: blank strings, "3 months",
floats, None. These helpers never raise; they return ``None`` (or the
given default) so a half-filled quote still prices.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any

# Leading numeric prefix, same tolerance as a browser's parseFloat/parseInt
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def parse_decimal(value: Any) -> Decimal | None:
    """Parse a leading decimal number, or None if there is none."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return Decimal(str(value))
    match = _FLOAT_PREFIX.match(str(value))
    if not match:
        return None
    try:
        return Decimal(match.group(1))
    except InvalidOperation:
        return None


def parse_int(value: Any) -> int | None:
    """Parse a leading integer (fractional part truncated), or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        number = parse_decimal(value)
        return int(number) if number is not None else None
    match = _INT_PREFIX.match(str(value))
    return int(match.group(1)) if match else None


def positive_int_or(value: Any, default: int) -> int:
    """Integer ≥ 1, falling back to ``default`` for anything else."""
    number = parse_int(value)
    if number is None or number < 1:
        return default
    return number


def decimal_or_zero(value: Any) -> Decimal:
    """Decimal value, 0 when unparseable."""
    number = parse_decimal(value)
    return number if number is not None else ZERO


def percentage(value: Any) -> Decimal:
    """Discount percentage clamped to [0, 100]; unparseable → 0."""
    number = decimal_or_zero(value)
    if number < ZERO:
        return ZERO
    if number > HUNDRED:
        return HUNDRED
    return number
