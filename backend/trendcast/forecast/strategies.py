# trendcast/forecast/strategies.py
"""
Interchangeable single-series forecasters.

Every strategy takes the observed values (oldest first) and returns a numpy
array of ``horizon`` central estimates. Strategies may raise on series they
cannot fit; the engine drops them for that call.
"""
from __future__ import annotations

import warnings
from abc import ABC, abstractmethod
from typing import Sequence, Tuple

import numpy as np
import pandas as pd
from statsmodels.tsa.holtwinters import Holt
from statsmodels.tsa.statespace.sarimax import SARIMAX


class ForecastStrategy(ABC):
    name: str = "base"

    @abstractmethod
    def forecast(self, values: np.ndarray, horizon: int) -> np.ndarray:
        raise NotImplementedError

    def __call__(self, values: Sequence[float], horizon: int) -> np.ndarray:
        arr = np.asarray(values, dtype=float)
        out = np.asarray(self.forecast(arr, int(horizon)), dtype=float).reshape(-1)
        if out.shape[0] != horizon or not np.all(np.isfinite(out)):
            raise ValueError(f"{self.name} produced an unusable forecast")
        return out


class LinearTrendStrategy(ForecastStrategy):
    """Least-squares line over the most recent ``window`` points, extrapolated."""

    name = "linear_trend"

    def __init__(self, window: int = 28):
        self.window = window

    def forecast(self, values: np.ndarray, horizon: int) -> np.ndarray:
        y = values[-self.window:]
        if y.size < 2:
            return np.full(horizon, float(y[-1]))
        x = np.arange(y.size, dtype=float)
        slope, intercept = np.polyfit(x, y, 1)
        future_x = np.arange(y.size, y.size + horizon, dtype=float)
        return intercept + slope * future_x


class HoltStrategy(ForecastStrategy):
    """Damped-trend exponential smoothing."""

    name = "holt"

    def forecast(self, values: np.ndarray, horizon: int) -> np.ndarray:
        if values.size < 5:
            raise ValueError("holt needs at least 5 points")
        if np.ptp(values) == 0:
            return np.full(horizon, float(values[-1]))
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            fit = Holt(values, damped_trend=True, initialization_method="estimated").fit(optimized=True)
            return np.asarray(fit.forecast(horizon), dtype=float)


class SeasonalMovingAverageStrategy(ForecastStrategy):
    """
    Weekly-adjusted moving average.

    Level is the mean of the last seven points, drift comes from the change
    against the seven points before them, and a day-of-week profile (deviation
    from a centered 7-day rolling mean) is added back when three weeks of
    history are available.
    """

    name = "seasonal_ma"
    period = 7

    def forecast(self, values: np.ndarray, horizon: int) -> np.ndarray:
        n = values.size
        p = self.period
        recent = values[-p:]
        level = float(recent.mean())
        drift = 0.0
        if n >= 2 * p:
            drift = (level - float(values[-2 * p:-p].mean())) / p

        season = np.zeros(p)
        if n >= 3 * p:
            s = pd.Series(values)
            detrended = s - s.rolling(window=p, center=True).mean()
            positions = pd.Series(np.arange(n) % p)
            profile = detrended.groupby(positions).mean().reindex(range(p)).fillna(0.0)
            season = profile.to_numpy() - profile.mean()

        # the level sits at the middle of the last window, (p - 1) / 2 steps back
        offset = (recent.size - 1) / 2.0
        steps = np.arange(1, horizon + 1, dtype=float)
        slots = (n - 1 + steps.astype(int)) % p
        return level + drift * (offset + steps) + season[slots]


class ArimaStrategy(ForecastStrategy):
    name = "arima"

    def __init__(self, order: Tuple[int, int, int] = (1, 1, 0)):
        self.order = order

    def forecast(self, values: np.ndarray, horizon: int) -> np.ndarray:
        if values.size < 10:
            raise ValueError("arima needs at least 10 points")
        if np.ptp(values) == 0:
            return np.full(horizon, float(values[-1]))
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            model = SARIMAX(
                values,
                order=self.order,
                enforce_stationarity=False,
                enforce_invertibility=False,
            )
            fit = model.fit(disp=False)
            return np.asarray(fit.forecast(steps=horizon), dtype=float)


def default_strategies() -> list[ForecastStrategy]:
    return [
        LinearTrendStrategy(),
        HoltStrategy(),
        SeasonalMovingAverageStrategy(),
        ArimaStrategy(),
    ]
