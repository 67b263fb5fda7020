import numpy as np
import pytest

from trendcast.forecast.strategies import (
    ArimaStrategy,
    HoltStrategy,
    LinearTrendStrategy,
    SeasonalMovingAverageStrategy,
)


def test_linear_trend_extends_line():
    out = LinearTrendStrategy(window=10)(np.arange(20, dtype=float), 3)
    assert out == pytest.approx([20.0, 21.0, 22.0])


def test_seasonal_ma_repeats_weekly_shape():
    week = [10, 20, 30, 40, 30, 20, 10]
    values = np.asarray(week * 6, dtype=float)
    out = SeasonalMovingAverageStrategy()(values, 7)

    # a flat weekly cycle has no drift, so the forecast keeps the day-of-week ordering
    assert np.argmax(out) == 3
    assert out.mean() == pytest.approx(np.mean(week), abs=0.5)


def test_seasonal_ma_without_history_is_level_plus_drift():
    out = SeasonalMovingAverageStrategy()(np.full(7, 5.0), 4)
    assert out == pytest.approx([5.0] * 4)


@pytest.mark.parametrize("strategy", [HoltStrategy(), ArimaStrategy()])
def test_constant_input_gives_constant_forecast(strategy):
    out = strategy(np.full(30, 42.0), 5)
    assert out == pytest.approx([42.0] * 5)


@pytest.mark.parametrize("strategy,n", [(HoltStrategy(), 4), (ArimaStrategy(), 9)])
def test_short_input_is_rejected(strategy, n):
    with pytest.raises(ValueError):
        strategy(np.arange(n, dtype=float), 3)


def test_unusable_output_is_rejected():
    class Nan(LinearTrendStrategy):
        name = "nan"

        def forecast(self, values, horizon):
            return np.full(horizon, np.nan)

    with pytest.raises(ValueError):
        Nan()(np.arange(10, dtype=float), 2)
