"""Cache key builders. Pure string composition, no I/O."""
from __future__ import annotations

from trendcast.forecast.versions import PREDICTION_ENGINE_VERSION


def create_cache_key(*parts) -> str:
    return ":".join("" if p is None else str(p) for p in parts)


def forecast_key(slug: str, term: str, tf: str, geo: str, data_hash: str,
                 engine_version: str = PREDICTION_ENGINE_VERSION) -> str:
    return create_cache_key("forecast", slug, term, tf, geo, data_hash, engine_version)


def warmup_status_key(slug: str, tf: str, geo: str, data_hash: str) -> str:
    return create_cache_key("warmup-status", slug, tf, geo, data_hash)


def warmup_error_key(slug: str, tf: str, geo: str, data_hash: str) -> str:
    return create_cache_key("warmup-error", slug, tf, geo, data_hash)


def warmup_started_at_key(slug: str, tf: str, geo: str, data_hash: str) -> str:
    return create_cache_key("warmup-started-at", slug, tf, geo, data_hash)


def warmup_finished_at_key(slug: str, tf: str, geo: str, data_hash: str) -> str:
    return create_cache_key("warmup-finished-at", slug, tf, geo, data_hash)


def warmup_debug_id_key(slug: str, tf: str, geo: str, data_hash: str) -> str:
    return create_cache_key("warmup-debug-id", slug, tf, geo, data_hash)
