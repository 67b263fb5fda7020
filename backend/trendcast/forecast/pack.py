# trendcast/forecast/pack.py
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from trendcast.errors import ForecastTimeoutError, InsufficientDataError
from trendcast.forecast.engine import TermForecast, predict_term
from trendcast.forecast.head_to_head import HeadToHead, compute_head_to_head
from trendcast.forecast.series import SeriesPoint, resolve_term_keys, term_values
from trendcast.observability.metrics import FORECAST_COMPUTE_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class ForecastPack:
    term_a: TermForecast
    term_b: TermForecast
    head_to_head: HeadToHead
    computed_at: datetime
    horizon: int
    data_hash: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "termA": self.term_a.to_summary(),
            "termB": self.term_b.to_summary(),
            "headToHead": self.head_to_head.to_dict(),
            "computedAt": self.computed_at.isoformat(),
            "horizon": self.horizon,
            "dataHash": self.data_hash,
        }


def build_forecast_pack(
    series: Sequence[SeriesPoint],
    term_a: str,
    term_b: str,
    horizon: int = 30,
    timeout: float = 60.0,
    data_hash: Optional[str] = None,
) -> ForecastPack:
    """
    Forecast both terms concurrently and derive head-to-head analytics.

    Pure compute: nothing is written to the cache or the database. Raises
    InsufficientDataError naming every term that could not be forecast, and
    ForecastTimeoutError when the two forecasts do not finish within ``timeout``
    seconds. A timed-out computation is abandoned, not interrupted.
    """
    key_a, key_b = resolve_term_keys(series, term_a, term_b)
    dates_a, values_a = term_values(series, key_a)
    dates_b, values_b = term_values(series, key_b)

    started = time.perf_counter()
    deadline = time.monotonic() + float(timeout)
    executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="forecast")
    try:
        fut_a = executor.submit(predict_term, dates_a, values_a, horizon, term_a)
        fut_b = executor.submit(predict_term, dates_b, values_b, horizon, term_b)
        try:
            forecast_a = fut_a.result(timeout=max(0.0, deadline - time.monotonic()))
            forecast_b = fut_b.result(timeout=max(0.0, deadline - time.monotonic()))
        except FutureTimeout as exc:
            raise ForecastTimeoutError(f"forecast for {term_a} vs {term_b} exceeded {timeout:.0f}s") from exc
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    FORECAST_COMPUTE_SECONDS.observe(time.perf_counter() - started)

    missing = [t for t, f in ((term_a, forecast_a), (term_b, forecast_b)) if f is None]
    if missing:
        raise InsufficientDataError(f"not enough data to forecast: {', '.join(missing)}", terms=missing)

    return ForecastPack(
        term_a=forecast_a,
        term_b=forecast_b,
        head_to_head=compute_head_to_head(forecast_a, forecast_b),
        computed_at=datetime.now(timezone.utc),
        horizon=int(horizon),
        data_hash=data_hash,
    )
