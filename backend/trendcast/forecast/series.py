# trendcast/forecast/series.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from trendcast.utils.numeric import coerce_float


@dataclass(frozen=True)
class SeriesPoint:
    """One day of normalized interest: ``values`` maps term -> 0..100."""

    date: date
    values: Dict[str, float] = field(default_factory=dict)


def _normalize_key(key: str) -> str:
    return re.sub(r"[^a-z0-9]", "", key.lower())


def _matches(key: str, term: str) -> bool:
    k, t = key.lower(), term.lower()
    return (
        k == t
        or _normalize_key(key) == _normalize_key(term)
        or re.sub(r"\s+", "-", k) == t
        or k.replace("-", " ") == t
    )


def available_keys(series: Sequence[SeriesPoint]) -> List[str]:
    """Every key seen anywhere in the series, in order of first appearance."""
    seen: Dict[str, None] = {}
    for point in series:
        for key in point.values:
            seen.setdefault(key, None)
    return list(seen)


def resolve_term_keys(series: Sequence[SeriesPoint], term_a: str, term_b: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Find the series keys holding each term's values.

    Matching tolerates case, spacing and dash differences between the
    comparison's terms and the upstream column names. A term with no matching
    key takes the first key not already claimed by the other term; both terms
    share one key only when the series holds a single key.
    """
    available = available_keys(series)
    if not available:
        return None, None

    key_a = next((k for k in available if _matches(k, term_a)), None)
    key_b = next((k for k in available if _matches(k, term_b) and k != key_a), None)
    if key_a is None:
        key_a = next((k for k in available if k != key_b), available[0])
    if key_b is None:
        key_b = next((k for k in available if k != key_a), key_a)
    return key_a, key_b


def term_values(series: Sequence[SeriesPoint], key: Optional[str]) -> Tuple[List[date], List[float]]:
    """Dates and values for one key, dropping missing or non-finite points."""
    dates: List[date] = []
    values: List[float] = []
    if key is None:
        return dates, values
    for point in sorted(series, key=lambda p: p.date):
        v = coerce_float(point.values.get(key))
        if v is None:
            continue
        dates.append(point.date)
        values.append(v)
    return dates, values
