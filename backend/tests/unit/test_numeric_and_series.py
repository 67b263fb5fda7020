from datetime import date

import pytest

from trendcast.forecast.series import SeriesPoint, resolve_term_keys, term_values
from trendcast.utils.clock import isoformat_z
from trendcast.utils.numeric import clamp, coerce_float, mean_or_none


@pytest.mark.parametrize("raw,expected", [("3.5", 3.5), (2, 2.0), (None, None), ("x", None), (True, None)])
def test_coerce_float(raw, expected):
    assert coerce_float(raw) == expected


def test_coerce_float_rejects_non_finite():
    assert coerce_float(float("nan")) is None
    assert coerce_float(float("inf")) is None


def test_small_helpers():
    assert clamp(120) == 100.0
    assert clamp(-3) == 0.0
    assert mean_or_none([None, 2, 4]) == 3.0
    assert mean_or_none([None]) is None


def test_resolve_term_keys_falls_back_to_position():
    series = [SeriesPoint(date(2025, 1, 1), {"first": 1.0, "second": 2.0})]
    assert resolve_term_keys(series, "x", "y") == ("first", "second")
    assert resolve_term_keys([], "x", "y") == (None, None)


def test_resolve_term_keys_looks_past_the_first_day():
    series = [
        SeriesPoint(date(2025, 1, 1), {"rust": 20.0}),
        SeriesPoint(date(2025, 1, 2), {"rust": 21.0, "go": 80.0}),
    ]
    assert resolve_term_keys(series, "rust", "go") == ("rust", "go")
    assert resolve_term_keys(series, "go", "rust") == ("go", "rust")
    # unmatched names never collapse onto the same key while another exists
    assert resolve_term_keys(series, "rust", "zig") == ("rust", "go")
    assert resolve_term_keys(series, "zig", "go") == ("rust", "go")


def test_resolve_term_keys_single_key_is_shared():
    series = [SeriesPoint(date(2025, 1, 1), {"only": 1.0})]
    assert resolve_term_keys(series, "x", "y") == ("only", "only")


def test_term_values_sorted_and_clean():
    series = [
        SeriesPoint(date(2025, 1, 2), {"a": 2.0}),
        SeriesPoint(date(2025, 1, 1), {"a": 1.0}),
        SeriesPoint(date(2025, 1, 3), {"a": float("nan")}),
    ]
    assert term_values(series, "a") == ([date(2025, 1, 1), date(2025, 1, 2)], [1.0, 2.0])


def test_isoformat_z():
    from datetime import datetime

    assert isoformat_z(datetime(2025, 1, 1, 12, 0, 0, 123)) == "2025-01-01T12:00:00Z"
    assert isoformat_z(None) is None
