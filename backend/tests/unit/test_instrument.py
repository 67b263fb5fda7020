import pytest

from trendcast.observability.instrument import _outcome_fields, log_job
from trendcast.services.evaluation import EvaluationSummary
from trendcast.services.warmup import WarmupResult


def test_outcome_fields_from_job_results():
    assert _outcome_fields(None) == {"processed": 0}
    assert _outcome_fields(3) == {"processed": 3}
    assert _outcome_fields([1, 2]) == {"processed": 2}
    summary = _outcome_fields(EvaluationSummary(total_found=2, evaluated=1, skipped=1))
    assert summary["evaluated"] == 1 and summary["totalFound"] == 2
    warm = _outcome_fields(WarmupResult(False, 7, "a-vs-b", "dbg", "failed", "boom"))
    assert warm == {"success": False, "jobId": 7, "slug": "a-vs-b", "debugId": "dbg", "status": "failed", "error": "boom"}


def test_log_job_passes_results_and_errors_through():
    @log_job("test.ok")
    def ok(x):
        return x * 2

    @log_job("test.fail")
    def broken():
        raise ValueError("nope")

    assert ok(4) == 8
    assert ok.__name__ == "ok"
    with pytest.raises(ValueError):
        broken()
