from datetime import date, timedelta

from trendcast.forecast import cache_keys
from trendcast.forecast.hashing import compute_data_hash, forecast_hash, stable_hash
from trendcast.forecast.series import SeriesPoint


def _series(values_a, values_b):
    start = date(2025, 1, 1)
    return [
        SeriesPoint(date=start + timedelta(days=i), values={"a": va, "b": vb})
        for i, (va, vb) in enumerate(zip(values_a, values_b))
    ]


def test_stable_hash_ignores_key_order():
    assert stable_hash({"x": 1, "y": [1, 2]}) == stable_hash({"y": [1, 2], "x": 1})
    assert len(stable_hash({"x": 1})) == 16


def test_data_hash_is_deterministic():
    s = _series([1, 2, 3], [4, 5, 6])
    assert compute_data_hash(s, "12m", "a", "b") == compute_data_hash(list(s), "12m", "a", "b")


def test_data_hash_ignores_input_order():
    s = _series([1, 2, 3], [4, 5, 6])
    assert compute_data_hash(s, "12m", "a", "b") == compute_data_hash(list(reversed(s)), "12m", "a", "b")


def test_data_hash_changes_with_inputs():
    base = compute_data_hash(_series([1, 2, 3], [4, 5, 6]), "12m", "a", "b")
    assert compute_data_hash(_series([1, 2, 4], [4, 5, 6]), "12m", "a", "b") != base
    assert compute_data_hash(_series([1, 2, 3], [4, 5, 6]), "5y", "a", "b") != base
    assert compute_data_hash(_series([1, 2, 3], [4, 5, 6]), "12m", "a", "b", versions={"prediction": "9"}) != base


def test_data_hash_skips_non_finite_points():
    clean = _series([1, 2], [4, 5])
    dirty = clean + [SeriesPoint(date=date(2025, 1, 3), values={"a": float("nan"), "b": 1})]
    assert compute_data_hash(clean, "12m", "a", "b") == compute_data_hash(dirty, "12m", "a", "b")


def test_forecast_hash_uses_recent_window():
    head = list(range(100))
    assert forecast_hash("t", head) == forecast_hash("t", [999] + head[1:])
    assert forecast_hash("t", head) != forecast_hash("t", head[:-1] + [0])


def test_cache_keys():
    assert cache_keys.create_cache_key("a", None, 3) == "a::3"
    key = cache_keys.forecast_key("py-vs-js", "python", "12m", "", "h1", engine_version="2.1.0")
    assert key == "forecast:py-vs-js:python:12m::h1:2.1.0"
    assert cache_keys.warmup_status_key("s", "12m", "US", "h") == "warmup-status:s:12m:US:h"
    assert cache_keys.warmup_error_key("s", "12m", "", "h").startswith("warmup-error:")


def test_data_hash_covers_term_missing_on_first_day():
    def gap_series(b_values):
        start = date(2025, 1, 1)
        out = [SeriesPoint(date=start, values={"rust": 20.0})]
        for i, vb in enumerate(b_values, start=1):
            out.append(SeriesPoint(date=start + timedelta(days=i), values={"rust": 20.0, "go": vb}))
        return out

    base = compute_data_hash(gap_series([80.0, 81.0]), "12m", "rust", "go")
    assert compute_data_hash(gap_series([80.0, 82.0]), "12m", "rust", "go") != base
