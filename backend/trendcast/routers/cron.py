# trendcast/routers/cron.py
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from trendcast.config import Settings, get_settings
from trendcast.core.deps import get_series_accessor
from trendcast.core.secrets import require_cron_secret
from trendcast.db.session import get_db
from trendcast.services.evaluation import run_evaluation_batch
from trendcast.services.series import SeriesAccessor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


@router.api_route("/evaluate-forecasts", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
def evaluate_forecasts(
    db: Session = Depends(get_db),
    accessor: SeriesAccessor = Depends(get_series_accessor),
    settings: Settings = Depends(get_settings),
):
    try:
        summary = run_evaluation_batch(db, accessor, settings)
    except Exception as e:
        logger.exception("evaluation.endpoint.error")
        return JSONResponse({"success": False, "error": str(e), "evaluated": 0, "totalFound": 0}, status_code=500)
    return JSONResponse(summary.to_dict(), status_code=200)
