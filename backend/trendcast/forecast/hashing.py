"""Content fingerprints used as cache-invalidation keys."""
from __future__ import annotations

import hashlib
import json
from datetime import date, datetime
from typing import Any, Mapping, Optional, Sequence

import numpy as np

from trendcast.forecast.series import SeriesPoint, resolve_term_keys
from trendcast.forecast.versions import INSIGHT_VERSION, PREDICTION_ENGINE_VERSION
from trendcast.utils.numeric import coerce_float

HASH_LENGTH = 16


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not hashable as JSON")


def canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=_json_default, allow_nan=False)


def stable_hash(obj: Any) -> str:
    """First 16 hex chars of sha256 over the canonical JSON of ``obj``."""
    payload = obj if isinstance(obj, str) else canonical_json(obj)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def default_versions() -> dict:
    return {"insight": INSIGHT_VERSION, "prediction": PREDICTION_ENGINE_VERSION}


def compute_data_hash(
    series: Sequence[SeriesPoint],
    timeframe: str,
    term_a: str,
    term_b: str,
    versions: Optional[Mapping[str, str]] = None,
) -> str:
    key_a, key_b = resolve_term_keys(series, term_a, term_b)
    cleaned = []
    for point in sorted(series, key=lambda p: p.date):
        va = coerce_float(point.values.get(key_a, 0) if key_a else 0)
        vb = coerce_float(point.values.get(key_b, 0) if key_b else 0)
        if va is None or vb is None:
            continue
        cleaned.append({"date": point.date.isoformat(), "valueA": va, "valueB": vb})

    return stable_hash(
        {
            "series": cleaned,
            "timeframe": timeframe,
            "termA": term_a,
            "termB": term_b,
            "versions": dict(versions) if versions is not None else default_versions(),
        }
    )


def forecast_hash(term: str, values: Sequence[float], version: str = PREDICTION_ENGINE_VERSION) -> str:
    """Per-term fingerprint over the last 20 observations."""
    recent = [round(float(v), 6) for v in list(values)[-20:]]
    return stable_hash({"term": term, "recent": recent, "version": version})
