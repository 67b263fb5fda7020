import time
from datetime import date, timedelta

import pytest

from trendcast.errors import ForecastTimeoutError, InsufficientDataError
from trendcast.forecast import pack as pack_module
from trendcast.forecast.pack import build_forecast_pack
from trendcast.forecast.series import SeriesPoint


def _series(values_a, values_b, names=("python", "java")):
    start = date(2025, 1, 1)
    out = []
    for i in range(max(len(values_a), len(values_b))):
        values = {}
        if i < len(values_a):
            values[names[0]] = values_a[i]
        if i < len(values_b):
            values[names[1]] = values_b[i]
        out.append(SeriesPoint(date=start + timedelta(days=i), values=values))
    return out


def test_pack_contains_both_terms_and_head_to_head():
    series = _series([10.0] * 90, [10.0 + i for i in range(90)])
    pack = build_forecast_pack(series, "python", "java", horizon=30, data_hash="abc")

    assert pack.term_a.term == "python"
    assert pack.term_b.term == "java"
    assert pack.term_b.trend == "rising"
    assert pack.head_to_head.predicted_winner == "termB"
    assert pack.horizon == 30
    body = pack.to_dict()
    assert body["dataHash"] == "abc"
    assert len(body["termA"]["points"]) == 30


def test_term_lookup_tolerates_case_and_dashes():
    series = _series([20.0] * 30, [30.0] * 30, names=("Machine Learning", "deep-learning"))
    pack = build_forecast_pack(series, "machine-learning", "Deep Learning", horizon=7)
    assert pack.term_a.last_observed == 20.0
    assert pack.term_b.last_observed == 30.0


def test_missing_term_names_the_term():
    series = _series([10.0] * 30, [5.0] * 3)
    with pytest.raises(InsufficientDataError) as exc:
        build_forecast_pack(series, "python", "java", horizon=7)
    assert exc.value.terms == ["java"]


def test_slow_forecast_times_out(monkeypatch):
    def slow(*args, **kwargs):
        time.sleep(0.5)

    monkeypatch.setattr(pack_module, "predict_term", slow)
    series = _series([10.0] * 30, [20.0] * 30)
    with pytest.raises(ForecastTimeoutError):
        build_forecast_pack(series, "python", "java", horizon=7, timeout=0.05)


def test_term_missing_on_first_day_keeps_its_own_values():
    start = date(2025, 1, 1)
    series = [SeriesPoint(date=start, values={"rust": 20.0})]
    series += [SeriesPoint(date=start + timedelta(days=i), values={"rust": 20.0, "go": 80.0}) for i in range(1, 40)]

    pack = build_forecast_pack(series, "rust", "go", horizon=7)

    assert pack.term_a.last_observed == 20.0
    assert pack.term_b.last_observed == 80.0
    assert pack.head_to_head.predicted_winner == "termB"
