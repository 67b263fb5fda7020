"""
Warmup job queue.

Jobs move ``queued -> running -> ready | failed`` and never backwards. Every
transition is a conditional UPDATE on the current status, so two workers racing
for the same row cannot both win. At most one job per
``(slug, timeframe, geo, data_hash)`` is active at a time: ``active_key`` holds
that fingerprint while the job is queued or running, and a unique index on it
turns a duplicate enqueue into an IntegrityError that resolves to the existing
job.
"""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from trendcast.cache.store import CacheStore
from trendcast.config import Settings
from trendcast.errors import CacheVerificationError, ForecastTimeoutError, InsufficientDataError
from trendcast.forecast.cache_keys import (
    forecast_key,
    warmup_debug_id_key,
    warmup_error_key,
    warmup_finished_at_key,
    warmup_started_at_key,
    warmup_status_key,
)
from trendcast.forecast.hashing import compute_data_hash
from trendcast.forecast.pack import ForecastPack, build_forecast_pack
from trendcast.models.comparison import Comparison
from trendcast.models.forecast_run import TERM_A, TERM_B, ForecastPoint, ForecastRun
from trendcast.models.warmup_job import (
    STATUS_FAILED,
    STATUS_QUEUED,
    STATUS_READY,
    STATUS_RUNNING,
    WarmupJob,
)
from trendcast.observability.instrument import log_job
from trendcast.observability.metrics import WARMUP_JOBS
from trendcast.services.series import SeriesAccessor
from trendcast.utils.clock import isoformat_z, utcnow

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500
STATUS_RUNNING_TTL = 15 * 60
STATUS_FAILED_TTL = 10 * 60
STATUS_READY_TTL = 7 * 24 * 60 * 60


@dataclass
class WarmupResult:
    success: bool
    job_id: Optional[int] = None
    slug: Optional[str] = None
    debug_id: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        out = {"success": self.success, "jobId": self.job_id, "slug": self.slug, "debugId": self.debug_id}
        if self.status:
            out["status"] = self.status
        if self.error:
            out["error"] = self.error
        return out


def fingerprint(slug: str, timeframe: str, geo: str, data_hash: str) -> str:
    return f"{slug}|{timeframe}|{geo or ''}|{data_hash}"


def truncate_error(message: str, limit: int = MAX_ERROR_LENGTH) -> str:
    return message if len(message) <= limit else message[:limit]


# ---------- queries ----------


def get_active_job(db: Session, slug: str, timeframe: str, geo: str, data_hash: str) -> Optional[WarmupJob]:
    stmt = select(WarmupJob).where(WarmupJob.active_key == fingerprint(slug, timeframe, geo, data_hash))
    return db.execute(stmt).scalars().first()


# ---------- enqueue / dequeue ----------


def enqueue_warmup(db: Session, slug: str, timeframe: str, geo: str, data_hash: str) -> Tuple[WarmupJob, bool]:
    """
    Queue a warmup unless one is already queued or running for the same
    fingerprint. Returns ``(job, created)``.
    """
    geo = geo or ""
    key = fingerprint(slug, timeframe, geo, data_hash)
    for _ in range(2):
        now = utcnow()
        job = WarmupJob(
            slug=slug,
            timeframe=timeframe,
            geo=geo,
            data_hash=data_hash,
            status=STATUS_QUEUED,
            attempts=0,
            debug_id=uuid.uuid4().hex[:16],
            active_key=key,
            created_at=now,
            updated_at=now,
        )
        db.add(job)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = get_active_job(db, slug, timeframe, geo, data_hash)
            if existing is not None:
                logger.info("warmup.enqueue.duplicate", extra={"job_id": existing.id, "slug": slug})
                return existing, False
            # the active job finished between our insert and the lookup; try again
            continue
        db.refresh(job)
        WARMUP_JOBS.labels(status=STATUS_QUEUED).inc()
        logger.info("warmup.enqueue.created", extra={"job_id": job.id, "slug": slug, "data_hash": data_hash})
        return job, True
    raise RuntimeError(f"could not enqueue warmup for {slug}")


def claim_next_job(db: Session) -> Optional[WarmupJob]:
    """
    Move the oldest queued job to ``running`` and return it.

    The transition is a compare-and-swap on ``status = 'queued'``; a worker that
    loses the race moves on to the next-oldest candidate.
    """
    while True:
        candidate_id = db.execute(
            select(WarmupJob.id)
            .where(WarmupJob.status == STATUS_QUEUED)
            .order_by(WarmupJob.created_at.asc(), WarmupJob.id.asc())
            .limit(1)
        ).scalar()
        if candidate_id is None:
            return None

        now = utcnow()
        result = db.execute(
            update(WarmupJob)
            .where(WarmupJob.id == candidate_id, WarmupJob.status == STATUS_QUEUED)
            .values(
                status=STATUS_RUNNING,
                attempts=WarmupJob.attempts + 1,
                started_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount == 1:
            job = db.get(WarmupJob, candidate_id)
            db.refresh(job)
            WARMUP_JOBS.labels(status=STATUS_RUNNING).inc()
            return job
        logger.info("warmup.claim.lost_race", extra={"job_id": candidate_id})


def _finish(db: Session, job_id: int, status: str, error: Optional[str] = None) -> bool:
    now = utcnow()
    result = db.execute(
        update(WarmupJob)
        .where(WarmupJob.id == job_id, WarmupJob.status == STATUS_RUNNING)
        .values(
            status=status,
            last_error=error,
            completed_at=now,
            updated_at=now,
            active_key=None,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount == 1:
        WARMUP_JOBS.labels(status=status).inc()
        return True
    return False


# ---------- persistence ----------


def get_or_create_comparison(db: Session, slug: str, timeframe: str, geo: str, term_a: str, term_b: str) -> Comparison:
    stmt = select(Comparison).where(
        Comparison.slug == slug, Comparison.timeframe == timeframe, Comparison.geo == (geo or "")
    )
    cmp = db.execute(stmt).scalars().first()
    if cmp is None:
        cmp = Comparison(slug=slug, term_a=term_a, term_b=term_b, timeframe=timeframe, geo=geo or "")
        db.add(cmp)
        db.flush()
    return cmp


def persist_forecast_run(db: Session, comparison: Comparison, pack: ForecastPack, timeframe: str, geo: str) -> ForecastRun:
    """Insert the run and its points, or return the existing run for the same key."""
    existing = db.execute(
        select(ForecastRun).where(
            ForecastRun.comparison_id == comparison.id,
            ForecastRun.timeframe == timeframe,
            ForecastRun.horizon == pack.horizon,
            ForecastRun.data_hash == pack.data_hash,
        )
    ).scalars().first()
    if existing is not None:
        return existing

    computed_at = pack.computed_at.replace(tzinfo=None)
    run = ForecastRun(
        comparison_id=comparison.id,
        timeframe=timeframe,
        geo=geo or "",
        horizon=pack.horizon,
        data_hash=pack.data_hash,
        engine_version=pack.term_a.engine_version,
        model_term_a=pack.term_a.model,
        model_term_b=pack.term_b.model,
        confidence_score_a=pack.term_a.confidence,
        confidence_score_b=pack.term_b.confidence,
        metrics_a=pack.term_a.metrics,
        metrics_b=pack.term_b.metrics,
        warnings_a=pack.term_a.warnings,
        warnings_b=pack.term_b.warnings,
        winner_probability=pack.head_to_head.winner_probability,
        expected_margin=pack.head_to_head.expected_margin_points,
        lead_change_risk=pack.head_to_head.lead_change_risk,
        computed_at=computed_at,
        horizon_ends_at=computed_at + timedelta(days=pack.horizon),
    )
    db.add(run)
    db.flush()
    for label, forecast in ((TERM_A, pack.term_a), (TERM_B, pack.term_b)):
        for p in forecast.points:
            db.add(
                ForecastPoint(
                    forecast_run_id=run.id,
                    term=label,
                    point_date=p.date,
                    value=p.value,
                    lower80=p.lower80,
                    upper80=p.upper80,
                    lower95=p.lower95,
                    upper95=p.upper95,
                )
            )
    db.flush()
    return run


# ---------- execution ----------


def _cache_term_payload(pack: ForecastPack, which: str) -> dict:
    forecast = pack.term_a if which == TERM_A else pack.term_b
    payload = forecast.to_summary()
    payload.update(
        {
            "role": which,
            "headToHead": pack.head_to_head.to_dict(),
            "computedAt": pack.computed_at.isoformat(),
            "dataHash": pack.data_hash,
        }
    )
    return payload


def execute_job(
    db: Session,
    job: WarmupJob,
    cache: CacheStore,
    accessor: SeriesAccessor,
    settings: Settings,
) -> WarmupResult:
    """Run one claimed job to ``ready`` or ``failed``; never raises for per-job errors."""
    slug, tf, geo, data_hash = job.slug, job.timeframe, job.geo or "", job.data_hash
    job_id, debug_id = job.id, job.debug_id
    deadline = time.monotonic() + float(settings.WARMUP_JOB_TIMEOUT_SECONDS)
    log_ctx = {"job_id": job_id, "slug": slug, "debug_id": debug_id}
    written: List[str] = []

    try:
        cache.set(warmup_status_key(slug, tf, geo, data_hash), STATUS_RUNNING, STATUS_RUNNING_TTL)
        cache.set(
            warmup_started_at_key(slug, tf, geo, data_hash),
            isoformat_z(job.started_at or utcnow()),
            STATUS_RUNNING_TTL,
        )

        terms = accessor.get_terms(slug, tf, geo)
        if terms is None:
            raise InsufficientDataError(f"unknown comparison {slug} ({tf}, geo={geo!r})")
        term_a, term_b = terms
        series = accessor.get_series(slug, tf, geo)
        current_hash = compute_data_hash(series, tf, term_a, term_b)
        if current_hash != data_hash:
            logger.warning("warmup.data_hash_drift", extra={**log_ctx, "current_hash": current_hash})

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ForecastTimeoutError("warmup budget exhausted before forecasting")
        pack = build_forecast_pack(
            series,
            term_a,
            term_b,
            horizon=settings.FORECAST_HORIZON_DAYS,
            timeout=min(float(settings.FORECAST_CALL_TIMEOUT_SECONDS), remaining),
            data_hash=data_hash,
        )
        if time.monotonic() > deadline:
            raise ForecastTimeoutError(f"warmup exceeded {settings.WARMUP_JOB_TIMEOUT_SECONDS:.0f}s budget")

        # the run stays uncommitted until both forecast keys read back from the cache
        comparison = get_or_create_comparison(db, slug, tf, geo, term_a, term_b)
        run = persist_forecast_run(db, comparison, pack, tf, geo)

        key_a = forecast_key(slug, term_a, tf, geo, data_hash)
        key_b = forecast_key(slug, term_b, tf, geo, data_hash)
        fresh, stale = settings.FORECAST_FRESH_TTL_SECONDS, settings.FORECAST_STALE_TTL_SECONDS
        written.append(key_a)
        cache.set(key_a, _cache_term_payload(pack, TERM_A), fresh, stale)
        written.append(key_b)
        cache.set(key_b, _cache_term_payload(pack, TERM_B), fresh, stale)
        missing = [k for k in (key_a, key_b) if cache.get(k) is None]
        if missing:
            raise CacheVerificationError(missing)

        cache.set(warmup_debug_id_key(slug, tf, geo, data_hash), debug_id, settings.WARMUP_DEBUG_TTL_SECONDS)
        db.commit()
        log_ctx["forecast_run_id"] = run.id
    except Exception as exc:  # noqa: BLE001
        db.rollback()
        _discard_forecast_keys(cache, written, log_ctx)
        message = truncate_error(f"{type(exc).__name__}: {exc}")
        _record_failure_in_cache(cache, settings, slug, tf, geo, data_hash, message, debug_id)
        _finish(db, job_id, STATUS_FAILED, error=message)
        logger.warning("warmup.job.failed", extra={**log_ctx, "error": message})
        return WarmupResult(False, job_id, slug, debug_id, STATUS_FAILED, message)

    if not _finish(db, job_id, STATUS_READY):
        # someone else (the reaper) already closed this job
        current = db.get(WarmupJob, job_id)
        db.refresh(current)
        logger.warning("warmup.job.finish_conflict", extra={**log_ctx, "status": current.status})
        return WarmupResult(False, job_id, slug, debug_id, current.status, "job was closed by another worker")

    try:
        cache.set(warmup_status_key(slug, tf, geo, data_hash), STATUS_READY, STATUS_READY_TTL)
        cache.set(warmup_finished_at_key(slug, tf, geo, data_hash), isoformat_z(utcnow()), STATUS_READY_TTL)
    except Exception as exc:  # noqa: BLE001
        logger.warning("warmup.status_mirror_failed", extra={**log_ctx, "error": str(exc)})

    logger.info("warmup.job.ready", extra=log_ctx)
    return WarmupResult(True, job_id, slug, debug_id, STATUS_READY)


def _discard_forecast_keys(cache: CacheStore, keys: List[str], log_ctx: dict) -> None:
    for key in keys:
        try:
            cache.delete(key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("warmup.cache_discard_failed", extra={**log_ctx, "key": key, "error": str(exc)})


def _record_failure_in_cache(
    cache: CacheStore,
    settings: Settings,
    slug: str,
    tf: str,
    geo: str,
    data_hash: str,
    message: str,
    debug_id: Optional[str],
) -> None:
    try:
        cache.set(
            warmup_error_key(slug, tf, geo, data_hash),
            {"message": message, "debugId": debug_id, "at": isoformat_z(utcnow())},
            settings.WARMUP_ERROR_TTL_SECONDS,
        )
        cache.set(warmup_status_key(slug, tf, geo, data_hash), STATUS_FAILED, STATUS_FAILED_TTL)
        cache.set(warmup_finished_at_key(slug, tf, geo, data_hash), isoformat_z(utcnow()), STATUS_FAILED_TTL)
    except Exception as exc:  # noqa: BLE001
        logger.warning("warmup.error_record_failed", extra={"slug": slug, "error": str(exc)})


@log_job("warmup.run_next")
def run_next_warmup(
    db: Session, cache: CacheStore, accessor: SeriesAccessor, settings: Settings
) -> Optional[WarmupResult]:
    """Dequeue and execute exactly one job. None when the queue is empty."""
    job = claim_next_job(db)
    if job is None:
        return None
    return execute_job(db, job, cache, accessor, settings)


def drain_warmup_queue(
    db: Session, cache: CacheStore, accessor: SeriesAccessor, settings: Settings, max_jobs: int
) -> List[WarmupResult]:
    results: List[WarmupResult] = []
    for _ in range(max(0, int(max_jobs))):
        result = run_next_warmup(db, cache, accessor, settings)
        if result is None:
            break
        results.append(result)
    return results


@log_job("warmup.reap")
def reap_stuck_jobs(db: Session, older_than_minutes: int, now: Optional[datetime] = None) -> int:
    """Fail ``running`` jobs whose ``started_at`` is older than the lease."""
    now = now or utcnow()
    cutoff = now - timedelta(minutes=int(older_than_minutes))
    result = db.execute(
        update(WarmupJob)
        .where(WarmupJob.status == STATUS_RUNNING, WarmupJob.started_at < cutoff)
        .values(
            status=STATUS_FAILED,
            last_error=f"lease expired: running for more than {int(older_than_minutes)} minutes",
            completed_at=now,
            updated_at=now,
            active_key=None,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    reaped = int(result.rowcount or 0)
    if reaped:
        WARMUP_JOBS.labels(status=STATUS_FAILED).inc(reaped)
        logger.warning("warmup.reaped", extra={"count": reaped})
    return reaped
