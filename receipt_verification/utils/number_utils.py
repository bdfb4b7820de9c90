"""Numeric helpers shared by the scoring code."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any


def round_half_up(value: float, places: int = 2) -> float:
    """Round to a fixed number of decimals with halves rounded away from zero.

    Python's round() uses banker's rounding and operates on the binary float,
    so 0.125 would become 0.12. Scores and distances are reported the
    conventional way instead.

    Args:
        value: Number to round
        places: Number of decimal places to keep

    Returns:
        The rounded value as a float
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def to_float(value: Any) -> float | None:
    """Coerce a form/JSON value to float, returning None for blanks and junk."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", ".")
    if not text:
        return None
    try:
        return float(Decimal(text))
    except (InvalidOperation, ValueError):
        return None
