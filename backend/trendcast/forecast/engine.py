# trendcast/forecast/engine.py
"""
Blended single-term forecaster.

Weighting rule
--------------
The last ``k = clamp(n // 5, 3, 7)`` observations are held out. Every strategy
is fit on the remaining points and scored by mean absolute error on the
holdout. Strategy ``i`` gets weight ``1 / (mae_i + WEIGHT_EPSILON)``; weights
are normalized to sum to one. Strategies that fail on the holdout get no
weight. The blend is then refit on the full series.

Intervals
---------
``sigma`` is the RMSE of the blended holdout forecast, floored at
``SIGMA_FLOOR``. Step ``h`` gets a half width of
``z * sigma * sqrt(h) * (1 + volatility)``, so bands widen with distance from
the last observation and with volatility. Everything is clamped to [0, 100]
afterwards; clamping is monotone so band ordering survives it.
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import numpy as np

from trendcast.errors import InsufficientDataError
from trendcast.forecast.hashing import forecast_hash
from trendcast.forecast.strategies import ForecastStrategy, default_strategies
from trendcast.forecast.versions import PREDICTION_ENGINE_VERSION
from trendcast.utils.numeric import clamp, coerce_float

logger = logging.getLogger(__name__)

MIN_POINTS = 7
SUFFICIENT_POINTS = 14
FULL_HISTORY_POINTS = 90
WEIGHT_EPSILON = 0.5
SIGMA_FLOOR = 0.5
Z80 = 1.2816
Z95 = 1.96
TREND_THRESHOLD = 0.05

LOW_CONFIDENCE_THRESHOLD = 70
HIGH_VOLATILITY_THRESHOLD = 0.5
DATA_QUALITY_THRESHOLD = 60

WARNING_LOW_CONFIDENCE = "low_confidence"
WARNING_INSUFFICIENT_DATA = "insufficient_data"
WARNING_HIGH_VOLATILITY = "high_volatility"
WARNING_DATA_QUALITY = "data_quality_concern"


@dataclass
class ForecastPoint:
    date: date
    value: float
    lower80: float
    upper80: float
    lower95: float
    upper95: float

    def to_dict(self) -> dict:
        out = asdict(self)
        out["date"] = self.date.isoformat()
        return out


@dataclass
class TermForecast:
    term: str
    points: List[ForecastPoint]
    trend: str
    confidence: float
    warnings: List[str]
    metrics: Dict[str, float]
    weights: Dict[str, float]
    last_observed: float
    last_date: date
    forecast_hash: str
    model: str = "blend"
    engine_version: str = PREDICTION_ENGINE_VERSION
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def horizon(self) -> int:
        return len(self.points)

    def average(self, days: int) -> Optional[float]:
        window = self.points[:days]
        if not window:
            return None
        return round(sum(p.value for p in window) / len(window), 2)

    def to_summary(self) -> dict:
        """JSON-ready form written to the cache."""
        return {
            "term": self.term,
            "model": self.model,
            "engineVersion": self.engine_version,
            "generatedAt": self.generated_at.isoformat(),
            "horizon": self.horizon,
            "trend": self.trend,
            "confidence": self.confidence,
            "warnings": list(self.warnings),
            "metrics": dict(self.metrics),
            "weights": dict(self.weights),
            "lastObserved": self.last_observed,
            "lastDate": self.last_date.isoformat(),
            "avg14": self.average(14),
            "avg30": self.average(30),
            "forecastHash": self.forecast_hash,
            "points": [p.to_dict() for p in self.points],
        }


# ---------- series diagnostics ----------


def holdout_size(n: int) -> int:
    return max(3, min(7, n // 5))


def volatility(values: np.ndarray) -> float:
    """Coefficient of variation (population std / mean); 0 for a zero mean."""
    mean = float(np.mean(values))
    if mean <= 0:
        return 0.0
    return float(np.std(values)) / mean


def data_quality(values: np.ndarray) -> float:
    """
    0-100 score from completeness (zeros count as missing) and the share of
    IQR outliers. Short series get a flat 30.
    """
    n = values.size
    if n < SUFFICIENT_POINTS:
        return 30.0
    completeness = float(np.count_nonzero(values > 0)) / n
    q1, q3 = np.percentile(values, [25, 75])
    iqr = q3 - q1
    outliers = np.count_nonzero((values < q1 - 1.5 * iqr) | (values > q3 + 1.5 * iqr))
    outlier_ratio = float(outliers) / n
    return round((completeness * 0.6 + (1 - outlier_ratio) * 0.4) * 100, 1)


def trend_strength(values: np.ndarray) -> float:
    """R^2 of a straight-line fit over the whole series."""
    if values.size < 3 or np.ptp(values) == 0:
        return 0.0
    x = np.arange(values.size, dtype=float)
    slope, intercept = np.polyfit(x, values, 1)
    fitted = intercept + slope * x
    ss_res = float(np.sum((values - fitted) ** 2))
    ss_tot = float(np.sum((values - values.mean()) ** 2))
    return round(max(0.0, 1 - ss_res / ss_tot), 4) if ss_tot > 0 else 0.0


def trend_label(values: np.ndarray) -> str:
    """Compare the mean of the recent window to the window before it."""
    window = max(1, min(14, values.size // 2))
    recent = float(np.mean(values[-window:]))
    older = float(np.mean(values[-2 * window:-window]))
    if older == 0:
        return "rising" if recent > 0 else "stable"
    change = (recent - older) / older
    if change > TREND_THRESHOLD:
        return "rising"
    if change < -TREND_THRESHOLD:
        return "falling"
    return "stable"


def interval_half_width(sigma: float, step: int, vol: float, z: float) -> float:
    return z * max(sigma, SIGMA_FLOOR) * math.sqrt(step) * (1 + max(vol, 0.0))


def confidence_score(holdout_mae: float, quality: float, n: int, vol: float) -> float:
    fit = clamp(100 - 2 * holdout_mae)
    sufficiency = min(1.0, n / FULL_HISTORY_POINTS) * 100
    stability = (1 - min(vol, 1.0)) * 100
    score = 0.45 * fit + 0.25 * quality + 0.15 * sufficiency + 0.15 * stability
    return round(clamp(score), 1)


def warning_flags(confidence: float, n: int, vol: float, quality: float) -> List[str]:
    flags: List[str] = []
    if confidence < LOW_CONFIDENCE_THRESHOLD:
        flags.append(WARNING_LOW_CONFIDENCE)
    if n < SUFFICIENT_POINTS:
        flags.append(WARNING_INSUFFICIENT_DATA)
    if vol > HIGH_VOLATILITY_THRESHOLD:
        flags.append(WARNING_HIGH_VOLATILITY)
    if quality < DATA_QUALITY_THRESHOLD:
        flags.append(WARNING_DATA_QUALITY)
    return flags


# ---------- blending ----------


def strategy_weights(
    values: np.ndarray, strategies: Sequence[ForecastStrategy]
) -> tuple[Dict[str, float], Dict[str, np.ndarray], np.ndarray]:
    """
    Score every strategy on the holdout.

    Returns (normalized weights, holdout predictions per strategy, holdout actuals).
    """
    k = holdout_size(values.size)
    train, actual = values[:-k], values[-k:]
    raw: Dict[str, float] = {}
    preds: Dict[str, np.ndarray] = {}
    for strategy in strategies:
        try:
            pred = strategy(train, k)
        except Exception as exc:  # noqa: BLE001
            logger.debug("forecast.strategy.holdout_failed", extra={"strategy": strategy.name, "error": str(exc)})
            continue
        mae = float(np.mean(np.abs(actual - pred)))
        raw[strategy.name] = 1.0 / (mae + WEIGHT_EPSILON)
        preds[strategy.name] = pred
    total = sum(raw.values())
    weights = {name: w / total for name, w in raw.items()} if total > 0 else {}
    return weights, preds, actual


def forecast_series(
    dates: Sequence[date],
    values: Sequence[float],
    horizon: int = 30,
    term: str = "",
    strategies: Optional[Sequence[ForecastStrategy]] = None,
) -> TermForecast:
    """Forecast one term. Raises InsufficientDataError below MIN_POINTS usable points."""
    pairs = [(d, coerce_float(v)) for d, v in zip(dates, values)]
    pairs = sorted(((d, clamp(v)) for d, v in pairs if v is not None), key=lambda p: p[0])
    if len(pairs) < MIN_POINTS:
        raise InsufficientDataError(
            f"need at least {MIN_POINTS} usable points, got {len(pairs)}",
            terms=[term] if term else None,
            points=len(pairs),
        )
    horizon = max(1, int(horizon))
    y = np.asarray([v for _, v in pairs], dtype=float)
    n = y.size
    strategies = list(strategies) if strategies is not None else default_strategies()

    weights, holdout_preds, holdout_actual = strategy_weights(y, strategies)

    full_preds: Dict[str, np.ndarray] = {}
    for strategy in strategies:
        if weights and strategy.name not in weights:
            continue
        try:
            full_preds[strategy.name] = strategy(y, horizon)
        except Exception as exc:  # noqa: BLE001
            logger.debug("forecast.strategy.fit_failed", extra={"strategy": strategy.name, "error": str(exc)})

    usable = {name: w for name, w in weights.items() if name in full_preds}
    if not usable and full_preds:
        usable = {name: 1.0 for name in full_preds}
    if usable:
        total = sum(usable.values())
        usable = {name: w / total for name, w in usable.items()}
        central = sum(w * full_preds[name] for name, w in usable.items())
    else:
        central = np.full(horizon, y[-1])
        usable = {"last_value": 1.0}

    if weights:
        blended_holdout = sum(w * holdout_preds[name] for name, w in weights.items())
        errors = holdout_actual - blended_holdout
        holdout_mae = float(np.mean(np.abs(errors)))
        sigma = max(float(np.sqrt(np.mean(errors ** 2))), SIGMA_FLOOR)
    else:
        holdout_mae = float(np.mean(np.abs(np.diff(y)))) if n > 1 else 0.0
        sigma = max(holdout_mae, SIGMA_FLOOR)

    vol = volatility(y)
    quality = data_quality(y)
    confidence = confidence_score(holdout_mae, quality, n, vol)
    last_date = pairs[-1][0]

    points: List[ForecastPoint] = []
    for step in range(1, horizon + 1):
        v = float(central[step - 1])
        w80 = interval_half_width(sigma, step, vol, Z80)
        w95 = interval_half_width(sigma, step, vol, Z95)
        points.append(
            ForecastPoint(
                date=last_date + timedelta(days=step),
                value=round(clamp(v), 2),
                lower80=round(clamp(v - w80), 2),
                upper80=round(clamp(v + w80), 2),
                lower95=round(clamp(v - w95), 2),
                upper95=round(clamp(v + w95), 2),
            )
        )

    return TermForecast(
        term=term,
        points=points,
        trend=trend_label(y),
        confidence=confidence,
        warnings=warning_flags(confidence, n, vol, quality),
        metrics={
            "dataQuality": quality,
            "volatility": round(vol, 4),
            "trendStrength": trend_strength(y),
            "holdoutMae": round(holdout_mae, 4),
            "sigma": round(sigma, 4),
            "points": n,
        },
        weights={name: round(w, 4) for name, w in usable.items()},
        last_observed=float(y[-1]),
        last_date=last_date,
        forecast_hash=forecast_hash(term, y.tolist()),
    )


def predict_term(
    dates: Sequence[date],
    values: Sequence[float],
    horizon: int = 30,
    term: str = "",
    strategies: Optional[Sequence[ForecastStrategy]] = None,
) -> Optional[TermForecast]:
    """Like forecast_series, but a too-short series yields None instead of raising."""
    try:
        return forecast_series(dates, values, horizon=horizon, term=term, strategies=strategies)
    except InsufficientDataError as exc:
        logger.info("forecast.insufficient_data", extra={"term": term, "points": exc.points})
        return None
