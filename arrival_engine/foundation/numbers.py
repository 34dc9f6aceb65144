"""Numeric normalisation helpers shared by config-load validators."""

from __future__ import annotations

import math
from typing import Optional


def finite_or_none(value: object) -> Optional[float]:
    """Coerce *value* to a finite float, or None if that is impossible."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from negative infinity."""
    return math.floor(value + 0.5)


def clamped_int(value: object, default: int, lower: int, upper: Optional[int] = None) -> int:
    """Round *value* and clamp it to [lower, upper]; junk becomes *default*."""
    number = finite_or_none(value)
    if number is None:
        number = default
    rounded = max(lower, round_half_up(number))
    return rounded if upper is None else min(upper, rounded)
