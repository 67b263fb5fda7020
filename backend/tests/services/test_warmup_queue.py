from datetime import timedelta

import pytest
from sqlalchemy import select, update

from _helpers import seed_comparison
from trendcast.config import get_settings
from trendcast.forecast.cache_keys import (
    forecast_key,
    warmup_debug_id_key,
    warmup_error_key,
    warmup_status_key,
)
from trendcast.forecast.hashing import compute_data_hash
from trendcast.models.forecast_run import ForecastRun
from trendcast.models.warmup_job import STATUS_FAILED, STATUS_QUEUED, STATUS_READY, STATUS_RUNNING, WarmupJob
from trendcast.services import warmup
from trendcast.services.series import DatabaseSeriesAccessor
from trendcast.utils.clock import utcnow

SLUG = "python-vs-javascript"


def _seed(db, days=60):
    return seed_comparison(
        db,
        SLUG,
        "python",
        "javascript",
        [40 + (i % 7) for i in range(days)],
        [55 - (i % 5) for i in range(days)],
    )


def _hash(db):
    accessor = DatabaseSeriesAccessor(db)
    return compute_data_hash(accessor.get_series(SLUG, "12m", ""), "12m", "python", "javascript")


class ForgetfulCache:
    """Accepts writes but never returns them."""

    def __init__(self):
        self.writes = {}

    def get(self, key):
        return None

    def get_entry(self, key):
        return None

    def set(self, key, value, fresh_ttl_seconds, stale_ttl_seconds=None):
        self.writes[key] = value

    def delete(self, key):
        self.writes.pop(key, None)


def test_enqueue_is_idempotent_while_active(db):
    job, created = warmup.enqueue_warmup(db, SLUG, "12m", "", "h1")
    again, created_again = warmup.enqueue_warmup(db, SLUG, "12m", "", "h1")

    assert created is True and created_again is False
    assert again.id == job.id
    assert job.status == STATUS_QUEUED
    assert job.attempts == 0
    assert len(job.debug_id) == 16
    assert db.execute(select(WarmupJob)).scalars().all() == [job]


def test_different_fingerprints_get_separate_jobs(db):
    a, _ = warmup.enqueue_warmup(db, SLUG, "12m", "", "h1")
    b, _ = warmup.enqueue_warmup(db, SLUG, "12m", "", "h2")
    c, _ = warmup.enqueue_warmup(db, SLUG, "12m", "US", "h1")
    assert len({a.id, b.id, c.id}) == 3


def test_claim_is_fifo_and_marks_running(db):
    first, _ = warmup.enqueue_warmup(db, SLUG, "12m", "", "h1")
    second, _ = warmup.enqueue_warmup(db, SLUG, "12m", "", "h2")

    claimed = warmup.claim_next_job(db)
    assert claimed.id == first.id
    assert claimed.status == STATUS_RUNNING
    assert claimed.attempts == 1
    assert claimed.started_at is not None

    assert warmup.claim_next_job(db).id == second.id
    assert warmup.claim_next_job(db) is None


def test_claim_skips_jobs_taken_by_another_worker(db):
    first, _ = warmup.enqueue_warmup(db, SLUG, "12m", "", "h1")
    second, _ = warmup.enqueue_warmup(db, SLUG, "12m", "", "h2")
    db.execute(update(WarmupJob).where(WarmupJob.id == first.id).values(status=STATUS_RUNNING))
    db.commit()

    assert warmup.claim_next_job(db).id == second.id


def test_run_next_on_empty_queue(db, cache):
    assert warmup.run_next_warmup(db, cache, DatabaseSeriesAccessor(db), get_settings()) is None


def test_successful_warmup_populates_cache_and_persists_run(db, cache):
    _seed(db)
    data_hash = _hash(db)
    job, _ = warmup.enqueue_warmup(db, SLUG, "12m", "", data_hash)

    result = warmup.run_next_warmup(db, cache, DatabaseSeriesAccessor(db), get_settings())

    assert result.success is True
    assert result.status == STATUS_READY
    db.refresh(job)
    assert job.status == STATUS_READY
    assert job.attempts == 1
    assert job.active_key is None
    assert job.completed_at is not None

    cached_a = cache.get(forecast_key(SLUG, "python", "12m", "", data_hash))
    cached_b = cache.get(forecast_key(SLUG, "javascript", "12m", "", data_hash))
    assert cached_a is not None and cached_b is not None
    assert cached_a["role"] == "termA"
    assert cached_a["headToHead"] == cached_b["headToHead"]
    assert len(cached_a["points"]) == get_settings().FORECAST_HORIZON_DAYS
    assert cache.get(warmup_status_key(SLUG, "12m", "", data_hash)) == STATUS_READY
    assert cache.get(warmup_debug_id_key(SLUG, "12m", "", data_hash)) == job.debug_id

    run = db.execute(select(ForecastRun)).scalars().one()
    assert run.data_hash == data_hash
    assert len(run.points) == 2 * run.horizon
    assert run.horizon_ends_at == run.computed_at + timedelta(days=run.horizon)
    assert 0 <= run.winner_probability <= 100


def test_new_job_allowed_after_completion(db, cache):
    _seed(db)
    data_hash = _hash(db)
    first, _ = warmup.enqueue_warmup(db, SLUG, "12m", "", data_hash)
    warmup.run_next_warmup(db, cache, DatabaseSeriesAccessor(db), get_settings())

    second, created = warmup.enqueue_warmup(db, SLUG, "12m", "", data_hash)
    assert created is True
    assert second.id != first.id


def test_insufficient_data_fails_the_job(db, cache):
    _seed(db, days=4)
    data_hash = _hash(db)
    job, _ = warmup.enqueue_warmup(db, SLUG, "12m", "", data_hash)

    result = warmup.run_next_warmup(db, cache, DatabaseSeriesAccessor(db), get_settings())

    assert result.success is False
    assert result.status == STATUS_FAILED
    db.refresh(job)
    assert job.status == STATUS_FAILED
    assert "InsufficientDataError" in job.last_error
    error = cache.get(warmup_error_key(SLUG, "12m", "", data_hash))
    assert error["debugId"] == job.debug_id
    assert cache.get(warmup_status_key(SLUG, "12m", "", data_hash)) == STATUS_FAILED
    assert db.execute(select(ForecastRun)).scalars().first() is None


def test_unknown_comparison_fails_the_job(db, cache):
    job, _ = warmup.enqueue_warmup(db, "nope-vs-nothing", "12m", "", "h")
    result = warmup.run_next_warmup(db, cache, DatabaseSeriesAccessor(db), get_settings())
    assert result.status == STATUS_FAILED
    assert "unknown comparison" in result.error


def test_unreadable_cache_write_fails_the_job(db):
    _seed(db)
    data_hash = _hash(db)
    job, _ = warmup.enqueue_warmup(db, SLUG, "12m", "", data_hash)
    cache = ForgetfulCache()

    result = warmup.run_next_warmup(db, cache, DatabaseSeriesAccessor(db), get_settings())

    assert result.success is False
    db.refresh(job)
    assert job.status == STATUS_FAILED
    assert "CacheVerificationError" in job.last_error
    assert db.execute(select(ForecastRun)).scalars().first() is None
    assert not any(key.startswith("forecast:") for key in cache.writes)


def _assert_failed_without_forecast(db, cache, job, data_hash, error_name):
    db.refresh(job)
    assert job.status == STATUS_FAILED
    assert error_name in job.last_error
    assert cache.get(forecast_key(SLUG, "python", "12m", "", data_hash)) is None
    assert cache.get(forecast_key(SLUG, "javascript", "12m", "", data_hash)) is None
    assert cache.get(warmup_status_key(SLUG, "12m", "", data_hash)) == STATUS_FAILED
    assert db.execute(select(ForecastRun)).scalars().first() is None


def test_persist_failure_leaves_no_forecast_in_cache(db, cache, monkeypatch):
    _seed(db)
    data_hash = _hash(db)
    job, _ = warmup.enqueue_warmup(db, SLUG, "12m", "", data_hash)

    def broken(*args, **kwargs):
        raise RuntimeError("insert failed")

    monkeypatch.setattr(warmup, "persist_forecast_run", broken)
    result = warmup.run_next_warmup(db, cache, DatabaseSeriesAccessor(db), get_settings())

    assert result.success is False
    _assert_failed_without_forecast(db, cache, job, data_hash, "insert failed")


def test_commit_failure_removes_written_forecast_keys(db, cache, monkeypatch):
    _seed(db)
    data_hash = _hash(db)
    job, _ = warmup.enqueue_warmup(db, SLUG, "12m", "", data_hash)
    claimed = warmup.claim_next_job(db)
    real_commit = db.commit
    calls = []

    def commit_once_broken():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("commit failed")
        return real_commit()

    monkeypatch.setattr(db, "commit", commit_once_broken)
    result = warmup.execute_job(db, claimed, cache, DatabaseSeriesAccessor(db), get_settings())

    assert result.success is False
    _assert_failed_without_forecast(db, cache, job, data_hash, "commit failed")


def test_failed_jobs_are_not_requeued(db, cache):
    job, _ = warmup.enqueue_warmup(db, "nope-vs-nothing", "12m", "", "h")
    warmup.run_next_warmup(db, cache, DatabaseSeriesAccessor(db), get_settings())
    assert warmup.claim_next_job(db) is None
    db.refresh(job)
    assert job.attempts == 1


def test_error_is_truncated():
    assert len(warmup.truncate_error("x" * 2000)) == warmup.MAX_ERROR_LENGTH
    assert warmup.truncate_error("short") == "short"


def test_finish_only_moves_running_jobs(db):
    job, _ = warmup.enqueue_warmup(db, SLUG, "12m", "", "h1")
    assert warmup._finish(db, job.id, STATUS_READY) is False
    db.refresh(job)
    assert job.status == STATUS_QUEUED


def test_reaper_fails_stale_running_jobs(db):
    stale, _ = warmup.enqueue_warmup(db, SLUG, "12m", "", "h1")
    fresh, _ = warmup.enqueue_warmup(db, SLUG, "12m", "", "h2")
    warmup.claim_next_job(db)
    warmup.claim_next_job(db)
    now = utcnow()
    db.execute(update(WarmupJob).where(WarmupJob.id == stale.id).values(started_at=now - timedelta(hours=2)))
    db.commit()

    assert warmup.reap_stuck_jobs(db, older_than_minutes=30, now=now) == 1

    db.refresh(stale)
    db.refresh(fresh)
    assert stale.status == STATUS_FAILED
    assert stale.active_key is None
    assert "lease expired" in stale.last_error
    assert fresh.status == STATUS_RUNNING
    # a worker finishing late cannot resurrect the reaped job
    assert warmup._finish(db, stale.id, STATUS_READY) is False


def test_drain_stops_when_queue_empty(db, cache):
    warmup.enqueue_warmup(db, "a-vs-b", "12m", "", "h1")
    warmup.enqueue_warmup(db, "c-vs-d", "12m", "", "h2")
    results = warmup.drain_warmup_queue(db, cache, DatabaseSeriesAccessor(db), get_settings(), max_jobs=5)
    assert len(results) == 2
    assert all(r.status == STATUS_FAILED for r in results)


def test_result_to_dict():
    out = warmup.WarmupResult(True, 3, "s", "dbg", STATUS_READY).to_dict()
    assert out == {"success": True, "jobId": 3, "slug": "s", "debugId": "dbg", "status": STATUS_READY}


@pytest.mark.parametrize("geo", ["", "US"])
def test_fingerprint_includes_geo(geo):
    assert warmup.fingerprint("s", "12m", geo, "h") == f"s|12m|{geo}|h"
