import logging

from trendcast.cache.store import build_cache_store
from trendcast.config import get_settings
from trendcast.db import session as db_session
from trendcast.services.evaluation import run_evaluation_batch
from trendcast.services.series import DatabaseSeriesAccessor
from trendcast.services.warmup import drain_warmup_queue, reap_stuck_jobs

logger = logging.getLogger(__name__)


def evaluate_forecasts() -> None:
    """Daily evaluation pass over forecast runs whose horizon has elapsed."""
    db = db_session.get_sessionmaker()()
    try:
        summary = run_evaluation_batch(db, DatabaseSeriesAccessor(db), get_settings())
        logger.info("evaluate_job.done", extra=summary.to_dict())
    except Exception as exc:
        logger.exception("evaluate_job.error", extra={"error": str(exc)})
    finally:
        db.close()


def drain_warmups() -> None:
    """
    Run up to WARMUP_DRAIN_MAX_JOBS queued warmups.

    Only registered with the redis cache; a process-local store is not
    visible to the web workers.
    """
    settings = get_settings()
    db = db_session.get_sessionmaker()()
    try:
        cache = build_cache_store(settings)
        results = drain_warmup_queue(db, cache, DatabaseSeriesAccessor(db), settings, settings.WARMUP_DRAIN_MAX_JOBS)
        logger.info(
            "drain_job.done",
            extra={"processed": len(results), "ready": sum(1 for r in results if r.success)},
        )
    except Exception as exc:
        logger.exception("drain_job.error", extra={"error": str(exc)})
    finally:
        db.close()


def reap_stuck_warmups() -> None:
    settings = get_settings()
    if settings.WARMUP_STUCK_JOB_TIMEOUT_MINUTES is None:
        return
    db = db_session.get_sessionmaker()()
    try:
        reap_stuck_jobs(db, settings.WARMUP_STUCK_JOB_TIMEOUT_MINUTES)
    except Exception as exc:
        logger.exception("reap_job.error", extra={"error": str(exc)})
    finally:
        db.close()
