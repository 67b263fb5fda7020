# trendcast/utils/numeric.py
from __future__ import annotations

import math
from typing import Iterable, List, Optional


def coerce_float(value) -> Optional[float]:
    """
    Best-effort float conversion that returns None when the value cannot be parsed
    or is not finite.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(out) or math.isinf(out):
        return None
    return out


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, float(value)))


def mean_or_none(values: Iterable[Optional[float]]) -> Optional[float]:
    """Average of the non-None entries, or None when there are none."""
    present: List[float] = [float(v) for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


__all__ = ["coerce_float", "clamp", "mean_or_none"]
