from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from trendcast.models.forecast_evaluation import ForecastEvaluation, ForecastTrustStats
from trendcast.utils.clock import utcnow

logger = logging.getLogger(__name__)

PERIOD_ALLTIME = "alltime"
ROLLING_WINDOW_DAYS = 90


def _winner_accuracy(db: Session, since: Optional[datetime] = None) -> tuple[Optional[float], int]:
    stmt = select(
        func.count(ForecastEvaluation.winner_correct),
        func.sum(case((ForecastEvaluation.winner_correct.is_(True), 1), else_=0)),
    )
    if since is not None:
        stmt = stmt.where(ForecastEvaluation.evaluated_at >= since)
    known, correct = db.execute(stmt).one()
    known = int(known or 0)
    if known == 0:
        return None, 0
    return round(float(correct or 0) / known * 100, 2), known


def get_trust_stats(db: Session, period: str = PERIOD_ALLTIME) -> Optional[ForecastTrustStats]:
    return db.execute(select(ForecastTrustStats).where(ForecastTrustStats.period == period)).scalars().first()


def recompute_trust_stats(db: Session, now: Optional[datetime] = None) -> ForecastTrustStats:
    """
    Rebuild the ``alltime`` row from every persisted evaluation.

    Always a full recomputation, so running it any number of times over the
    same evaluations yields the same row.
    """
    now = now or utcnow()
    total = int(db.execute(select(func.count(ForecastEvaluation.id))).scalar() or 0)
    coverage = db.execute(select(func.avg(ForecastEvaluation.interval_hit_rate_80))).scalar()
    winner_accuracy, _ = _winner_accuracy(db)
    last_90, _ = _winner_accuracy(db, since=now - timedelta(days=ROLLING_WINDOW_DAYS))

    values = {
        "total_evaluated": total,
        "winner_accuracy_percent": winner_accuracy,
        "interval_coverage_percent": round(float(coverage), 2) if coverage is not None else None,
        "last_90_days_accuracy": last_90,
        "sample_size": total,
        "last_calculated": now,
    }

    for _ in range(2):
        row = get_trust_stats(db, PERIOD_ALLTIME)
        if row is None:
            row = ForecastTrustStats(period=PERIOD_ALLTIME)
            db.add(row)
        for field, value in values.items():
            setattr(row, field, value)
        try:
            db.commit()
        except IntegrityError:
            # concurrent first insert of the period row
            db.rollback()
            continue
        db.refresh(row)
        logger.info("trust_stats.recomputed", extra={"total_evaluated": total, "winner_accuracy": winner_accuracy})
        return row
    raise RuntimeError("could not upsert trust stats")
