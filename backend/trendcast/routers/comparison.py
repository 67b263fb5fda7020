# trendcast/routers/comparison.py
import logging

from fastapi import APIRouter, Depends, Query
from fastapi import status as http
from sqlalchemy.orm import Session

from trendcast.cache.store import CacheStore
from trendcast.core.deps import get_cache, get_series_accessor
from trendcast.db.session import get_db
from trendcast.errors import TransientIOError
from trendcast.forecast.cache_keys import forecast_key, warmup_error_key
from trendcast.forecast.hashing import compute_data_hash
from trendcast.schemas.common import fail, meta_now, ok
from trendcast.services.series import SeriesAccessor
from trendcast.services.warmup import enqueue_warmup

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/comparison", tags=["comparison"])


@router.get("/forecast")
def read_forecast(
    slug: str = Query(...),
    timeframe: str = Query("12m"),
    geo: str = Query(""),
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
    accessor: SeriesAccessor = Depends(get_series_accessor),
):
    """
    Serve cached forecasts for a comparison. On a miss (or a stale hit) a warmup
    job is queued; the response never waits for the computation.
    """
    meta = meta_now(slug=slug, timeframe=timeframe, geo=geo or None)
    try:
        terms = accessor.get_terms(slug, timeframe, geo)
        if terms is None:
            return fail("not_found", f"Unknown comparison '{slug}'", status_code=http.HTTP_404_NOT_FOUND, meta=meta)
        term_a, term_b = terms
        series = accessor.get_series(slug, timeframe, geo)
        data_hash = compute_data_hash(series, timeframe, term_a, term_b)

        entry_a = cache.get_entry(forecast_key(slug, term_a, timeframe, geo, data_hash))
        entry_b = cache.get_entry(forecast_key(slug, term_b, timeframe, geo, data_hash))
        if entry_a is not None and entry_b is not None:
            stale = entry_a.is_stale or entry_b.is_stale
            if stale:
                enqueue_warmup(db, slug, timeframe, geo, data_hash)
            return ok(
                data={
                    "status": "ready",
                    "stale": stale,
                    "dataHash": data_hash,
                    "termA": entry_a.value,
                    "termB": entry_b.value,
                    "headToHead": (entry_a.value or {}).get("headToHead"),
                },
                meta=meta,
            )

        job, created = enqueue_warmup(db, slug, timeframe, geo, data_hash)
        last_error = cache.get(warmup_error_key(slug, timeframe, geo, data_hash))
    except TransientIOError as e:
        logger.warning("comparison.forecast.unavailable", extra={"slug": slug, "error": str(e)})
        return fail("unavailable", str(e), status_code=http.HTTP_503_SERVICE_UNAVAILABLE, meta=meta)

    return ok(
        data={
            "status": job.status,
            "jobId": job.id,
            "debugId": job.debug_id,
            "queued": created,
            "dataHash": data_hash,
            "lastError": last_error,
        },
        meta=meta,
        status_code=http.HTTP_202_ACCEPTED,
    )
