"""Exception types shared across the forecast pipeline.

The four families mirror how callers react to them:

* ``InputError``: the data cannot be forecast yet; callers treat it as an
  absent result.
* ``TransientIOError``: the cache or database could not be reached; the
  enclosing job or evaluation is marked failed/skipped.
* ``ConfigurationError``: a required secret or setting is missing; endpoints
  refuse to operate.
* ``ConsistencyError``: a write reported success but could not be read back.
"""
from __future__ import annotations


class TrendCastError(Exception):
    """Base class for pipeline errors."""


class InputError(TrendCastError):
    pass


class InsufficientDataError(InputError):
    def __init__(self, message: str = "insufficient data", *, terms: list[str] | None = None, points: int | None = None):
        super().__init__(message)
        self.terms = list(terms or [])
        self.points = points


class TransientIOError(TrendCastError):
    pass


class CacheUnavailableError(TransientIOError):
    pass


class StoreUnavailableError(TransientIOError):
    pass


class ConfigurationError(TrendCastError):
    pass


class ConsistencyError(TrendCastError):
    pass


class CacheVerificationError(ConsistencyError):
    def __init__(self, missing_keys: list[str]):
        super().__init__(f"cache verification failed; missing keys: {', '.join(missing_keys)}")
        self.missing_keys = list(missing_keys)


class ForecastTimeoutError(TrendCastError):
    pass


__all__ = [
    "TrendCastError",
    "InputError",
    "InsufficientDataError",
    "TransientIOError",
    "CacheUnavailableError",
    "StoreUnavailableError",
    "ConfigurationError",
    "ConsistencyError",
    "CacheVerificationError",
    "ForecastTimeoutError",
]
