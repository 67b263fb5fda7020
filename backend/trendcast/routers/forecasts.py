# trendcast/routers/forecasts.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from trendcast.db.session import get_db
from trendcast.models.comparison import Comparison
from trendcast.models.forecast_run import ForecastRun
from trendcast.schemas.common import meta_now, ok
from trendcast.schemas.forecast import EvaluationOut, TrustStatsOut, VerifiedPointOut, VerifiedRunOut
from trendcast.services.trust_stats import PERIOD_ALLTIME, get_trust_stats

router = APIRouter(prefix="/api/forecasts", tags=["forecasts"])


@router.get("/verified")
def read_verified(
    slug: str | None = Query(None),
    term: str | None = Query(None),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
):
    """Most recently evaluated runs with predicted vs. realized points."""
    stmt = (
        select(ForecastRun)
        .join(Comparison, Comparison.id == ForecastRun.comparison_id)
        .options(
            selectinload(ForecastRun.points),
            selectinload(ForecastRun.evaluation),
            selectinload(ForecastRun.comparison),
        )
        .where(ForecastRun.evaluated_at.is_not(None))
        .order_by(ForecastRun.evaluated_at.desc())
    )
    if slug:
        stmt = stmt.where(Comparison.slug == slug)
    if term:
        stmt = stmt.where(or_(Comparison.term_a == term, Comparison.term_b == term))
    runs = db.execute(stmt.limit(limit)).scalars().all()

    data = [
        VerifiedRunOut(
            id=r.id,
            slug=r.comparison.slug,
            term_a=r.comparison.term_a,
            term_b=r.comparison.term_b,
            timeframe=r.timeframe,
            horizon=r.horizon,
            computed_at=r.computed_at,
            evaluated_at=r.evaluated_at,
            winner_probability=r.winner_probability,
            evaluation=EvaluationOut.model_validate(r.evaluation) if r.evaluation else None,
            points=[VerifiedPointOut.model_validate(p) for p in r.points],
        ).model_dump()
        for r in runs
    ]
    return ok(data=data, meta=meta_now(slug=slug, term=term, limit=limit))


@router.get("/trust")
def read_trust(db: Session = Depends(get_db)):
    row = get_trust_stats(db, PERIOD_ALLTIME)
    if not row:
        raise HTTPException(status_code=404, detail="No trust stats computed yet")
    return ok(data=TrustStatsOut.model_validate(row).model_dump(), meta=meta_now(period=PERIOD_ALLTIME))
