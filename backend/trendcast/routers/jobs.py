# trendcast/routers/jobs.py
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from trendcast.cache.store import CacheStore
from trendcast.config import Settings, get_settings
from trendcast.core.deps import get_cache, get_series_accessor
from trendcast.core.secrets import require_warmup_secret
from trendcast.db.session import get_db
from trendcast.services.series import SeriesAccessor
from trendcast.services.warmup import run_next_warmup

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.post("/run-warmup", dependencies=[Depends(require_warmup_secret)])
def run_warmup(
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
    accessor: SeriesAccessor = Depends(get_series_accessor),
    settings: Settings = Depends(get_settings),
):
    """Dequeue and execute exactly one warmup job."""
    try:
        result = run_next_warmup(db, cache, accessor, settings)
    except Exception as e:
        logger.exception("warmup.endpoint.error")
        return JSONResponse({"success": False, "error": str(e), "processed": 0}, status_code=500)

    if result is None:
        return JSONResponse({"success": True, "message": "No queued jobs", "processed": 0}, status_code=200)

    payload = result.to_dict()
    payload["processed"] = 1
    return JSONResponse(payload, status_code=200)
