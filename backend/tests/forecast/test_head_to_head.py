from datetime import date, timedelta

import pytest

from trendcast.forecast.engine import ForecastPoint, TermForecast
from trendcast.forecast.head_to_head import compute_head_to_head, lead_change_risk, normal_cdf


def _forecast(values, half_width=5.0, last=None, confidence=80.0):
    start = date(2025, 3, 1)
    points = [
        ForecastPoint(
            date=start + timedelta(days=i),
            value=v,
            lower80=v - half_width,
            upper80=v + half_width,
            lower95=v - 2 * half_width,
            upper95=v + 2 * half_width,
        )
        for i, v in enumerate(values)
    ]
    return TermForecast(
        term="t",
        points=points,
        trend="stable",
        confidence=confidence,
        warnings=[],
        metrics={},
        weights={},
        last_observed=values[0] if last is None else last,
        last_date=start - timedelta(days=1),
        forecast_hash="0" * 16,
    )


def test_normal_cdf_reference_points():
    assert normal_cdf(0) == pytest.approx(0.5)
    assert normal_cdf(1.96) == pytest.approx(0.975, abs=1e-3)


def test_identical_forecasts_are_a_coin_flip():
    h2h = compute_head_to_head(_forecast([40] * 10), _forecast([40] * 10))
    assert h2h.winner_probability == 50.0
    assert h2h.expected_margin_points == 0.0
    assert h2h.predicted_winner == "termA"


def test_clear_leader_b():
    h2h = compute_head_to_head(_forecast([10] * 30), _forecast([90] * 30))
    assert h2h.winner_probability > 99
    assert h2h.predicted_winner == "termB"
    assert h2h.expected_margin_points == pytest.approx(80.0)
    assert h2h.lead_change_risk == "low"
    assert h2h.forecast_horizon == 30
    assert len(h2h.daily_probabilities) == 30


def test_clear_leader_a():
    h2h = compute_head_to_head(_forecast([70] * 30), _forecast([20] * 30))
    assert h2h.winner_probability < 1
    assert h2h.predicted_winner == "termA"


def test_narrow_margin_is_high_risk():
    h2h = compute_head_to_head(_forecast([50] * 10, half_width=15), _forecast([52] * 10, half_width=15))
    assert h2h.lead_change_risk == "high"
    assert 50 < h2h.winner_probability < 80


def test_lead_change_risk_thresholds():
    assert lead_change_risk(0.5, 0.0, 90) == "low"
    assert lead_change_risk(0.05, 0.0, 90) == "high"
    assert lead_change_risk(0.5, 0.31, 90) == "high"
    assert lead_change_risk(0.5, 0.0, 49) == "high"
    assert lead_change_risk(0.15, 0.0, 90) == "medium"
    assert lead_change_risk(0.5, 0.2, 90) == "medium"
    assert lead_change_risk(0.5, 0.0, 65) == "medium"


def test_to_dict_keys():
    out = compute_head_to_head(_forecast([10] * 5), _forecast([20] * 5)).to_dict()
    assert set(out) == {
        "winnerProbability",
        "expectedMarginPoints",
        "leadChangeRisk",
        "currentMargin",
        "crossoverProbability",
        "forecastHorizon",
        "dailyProbabilities",
    }
