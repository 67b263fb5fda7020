from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Mapping, Optional, Sequence

from sqlalchemy import case, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from trendcast.config import Settings
from trendcast.errors import StoreUnavailableError
from trendcast.forecast.series import resolve_term_keys, term_values
from trendcast.models.forecast_evaluation import ForecastEvaluation
from trendcast.models.forecast_run import TERM_A, TERM_B, ForecastPoint, ForecastRun
from trendcast.observability.instrument import log_job
from trendcast.observability.metrics import FORECAST_EVALUATIONS
from trendcast.services.series import SeriesAccessor
from trendcast.services.trust_stats import recompute_trust_stats
from trendcast.utils.clock import utcnow
from trendcast.utils.numeric import mean_or_none

logger = logging.getLogger(__name__)

OUTCOME_EVALUATED = "evaluated"
OUTCOME_SKIPPED = "skipped"
OUTCOME_ALREADY = "already_evaluated"
OUTCOME_FAILED = "failed"


@dataclass
class TermScore:
    matched: int
    mae: Optional[float] = None
    mape: Optional[float] = None
    hit_rate_80: Optional[float] = None
    hit_rate_95: Optional[float] = None
    direction_ratio: Optional[float] = None
    final_actual: Optional[float] = None

    @property
    def direction_correct(self) -> Optional[bool]:
        if self.direction_ratio is None:
            return None
        return self.direction_ratio > 0.5


@dataclass
class RunScore:
    winner_correct: Optional[bool]
    direction_correct_a: Optional[bool]
    direction_correct_b: Optional[bool]
    interval_hit_rate_80: Optional[float]
    interval_hit_rate_95: Optional[float]
    mae: Optional[float]
    mape: Optional[float]
    evaluated_points: int


@dataclass
class EvaluationSummary:
    total_found: int = 0
    evaluated: int = 0
    skipped: int = 0
    already_evaluated: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return {
            "success": True,
            "evaluated": self.evaluated,
            "totalFound": self.total_found,
            "skipped": self.skipped,
            "alreadyEvaluated": self.already_evaluated,
            "failed": self.failed,
        }


def _sign(x: float) -> int:
    return (x > 0) - (x < 0)


def score_term(points: Sequence[ForecastPoint], actuals: Mapping[date, float]) -> TermScore:
    """
    Compare one term's forecast points with realized values.

    Percentage error is ``|err| / actual * 100`` and counts as 0 when the
    realized value is 0. Direction is scored on consecutive forecast days where
    both days were realized.
    """
    ordered = sorted(points, key=lambda p: p.point_date)
    abs_errors: List[float] = []
    pct_errors: List[float] = []
    hits80 = hits95 = 0
    for p in ordered:
        actual = actuals.get(p.point_date)
        if actual is None:
            continue
        err = abs(actual - p.value)
        abs_errors.append(err)
        pct_errors.append(err / actual * 100 if actual > 0 else 0.0)
        if p.lower80 <= actual <= p.upper80:
            hits80 += 1
        if p.lower95 <= actual <= p.upper95:
            hits95 += 1

    matched = len(abs_errors)
    if matched == 0:
        return TermScore(matched=0)

    correct = total = 0
    for prev, cur in zip(ordered, ordered[1:]):
        a_prev, a_cur = actuals.get(prev.point_date), actuals.get(cur.point_date)
        if a_prev is None or a_cur is None:
            continue
        total += 1
        if _sign(cur.value - prev.value) == _sign(a_cur - a_prev):
            correct += 1

    last_matched = [p for p in ordered if p.point_date in actuals][-1]
    return TermScore(
        matched=matched,
        mae=sum(abs_errors) / matched,
        mape=sum(pct_errors) / matched,
        hit_rate_80=hits80 / matched * 100,
        hit_rate_95=hits95 / matched * 100,
        direction_ratio=(correct / total) if total else None,
        final_actual=actuals[last_matched.point_date],
    )


def score_run(
    winner_probability: float,
    points_a: Sequence[ForecastPoint],
    points_b: Sequence[ForecastPoint],
    actuals_a: Mapping[date, float],
    actuals_b: Mapping[date, float],
) -> Optional[RunScore]:
    """Score both terms; None when neither has a single realized date."""
    a = score_term(points_a, actuals_a)
    b = score_term(points_b, actuals_b)
    if a.matched == 0 and b.matched == 0:
        return None

    winner_correct: Optional[bool] = None
    if a.final_actual is not None and b.final_actual is not None:
        predicted = TERM_B if winner_probability > 50 else TERM_A
        actual = TERM_B if b.final_actual > a.final_actual else TERM_A
        winner_correct = predicted == actual

    # averages across terms fall back to whichever term has matches
    return RunScore(
        winner_correct=winner_correct,
        direction_correct_a=a.direction_correct,
        direction_correct_b=b.direction_correct,
        interval_hit_rate_80=mean_or_none([a.hit_rate_80, b.hit_rate_80]),
        interval_hit_rate_95=mean_or_none([a.hit_rate_95, b.hit_rate_95]),
        mae=mean_or_none([a.mae, b.mae]),
        mape=mean_or_none([a.mape, b.mape]),
        evaluated_points=a.matched + b.matched,
    )


# ---------- persistence ----------


def find_eligible_runs(db: Session, now: datetime, buffer_days: int, limit: int) -> List[ForecastRun]:
    """
    Unevaluated runs whose horizon ended at least ``buffer_days`` ago.

    Runs never attempted come first, oldest horizon first; runs skipped earlier
    for lack of data follow, least recently attempted first, so they cannot
    crowd newer runs out of a batch.
    """
    cutoff = now - timedelta(days=int(buffer_days))
    stmt = (
        select(ForecastRun)
        .where(ForecastRun.evaluated_at.is_(None), ForecastRun.horizon_ends_at <= cutoff)
        .order_by(
            case((ForecastRun.last_evaluation_attempt_at.is_(None), 0), else_=1),
            ForecastRun.last_evaluation_attempt_at.asc(),
            ForecastRun.horizon_ends_at.asc(),
            ForecastRun.id.asc(),
        )
        .limit(int(limit))
    )
    try:
        return list(db.execute(stmt).scalars().all())
    except SQLAlchemyError as exc:
        raise StoreUnavailableError(f"could not query forecast runs: {exc}") from exc


def _realized(accessor: SeriesAccessor, run: ForecastRun) -> tuple[Dict[date, float], Dict[date, float]]:
    dates = [p.point_date for p in run.points]
    if not dates:
        return {}, {}
    comparison = run.comparison
    series = accessor.get_series(comparison.slug, run.timeframe, run.geo or "", start=min(dates), end=max(dates))
    key_a, key_b = resolve_term_keys(series, comparison.term_a, comparison.term_b)
    out = []
    for key in (key_a, key_b):
        ds, vs = term_values(series, key)
        out.append(dict(zip(ds, vs)))
    return out[0], out[1]


def evaluate_run(db: Session, run: ForecastRun, accessor: SeriesAccessor, now: Optional[datetime] = None) -> str:
    """Write exactly one evaluation for ``run`` when realized data exists."""
    now = now or utcnow()
    existing = db.execute(
        select(ForecastEvaluation).where(ForecastEvaluation.forecast_run_id == run.id)
    ).scalars().first()
    if existing is not None:
        if run.evaluated_at is None:
            run.evaluated_at = existing.evaluated_at
            db.commit()
        return OUTCOME_ALREADY

    actuals_a, actuals_b = _realized(accessor, run)
    points_a = [p for p in run.points if p.term == TERM_A]
    points_b = [p for p in run.points if p.term == TERM_B]
    score = score_run(run.winner_probability, points_a, points_b, actuals_a, actuals_b)
    if score is None:
        run.last_evaluation_attempt_at = now
        db.commit()
        logger.info("evaluation.run.skipped", extra={"forecast_run_id": run.id, "reason": "no_realized_data"})
        return OUTCOME_SKIPPED

    db.add(
        ForecastEvaluation(
            forecast_run_id=run.id,
            evaluated_at=now,
            winner_correct=score.winner_correct,
            direction_correct_a=score.direction_correct_a,
            direction_correct_b=score.direction_correct_b,
            interval_hit_rate_80=score.interval_hit_rate_80,
            interval_hit_rate_95=score.interval_hit_rate_95,
            mae=score.mae,
            mape=score.mape,
            evaluated_points=score.evaluated_points,
        )
    )
    for p in points_a:
        p.actual_value = actuals_a.get(p.point_date)
    for p in points_b:
        p.actual_value = actuals_b.get(p.point_date)
    run.evaluated_at = now
    try:
        db.commit()
    except IntegrityError:
        # another evaluator got there first
        db.rollback()
        return OUTCOME_ALREADY
    logger.info(
        "evaluation.run.completed",
        extra={"forecast_run_id": run.id, "points": score.evaluated_points, "winner_correct": score.winner_correct},
    )
    return OUTCOME_EVALUATED


@log_job("forecast.evaluate")
def run_evaluation_batch(
    db: Session, accessor: SeriesAccessor, settings: Settings, now: Optional[datetime] = None
) -> EvaluationSummary:
    """
    Evaluate every eligible run (bounded by EVALUATION_BATCH_SIZE), then rebuild
    trust statistics. A run that fails is logged and skipped; only a failure to
    query the store at all propagates.
    """
    now = now or utcnow()
    runs = find_eligible_runs(db, now, settings.EVALUATION_BUFFER_DAYS, settings.EVALUATION_BATCH_SIZE)
    summary = EvaluationSummary(total_found=len(runs))
    run_ids = [r.id for r in runs]

    for run_id in run_ids:
        try:
            run = db.execute(
                select(ForecastRun)
                .options(selectinload(ForecastRun.points), selectinload(ForecastRun.comparison))
                .where(ForecastRun.id == run_id)
            ).scalars().first()
            if run is None:
                continue
            outcome = evaluate_run(db, run, accessor, now=now)
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            summary.failed += 1
            FORECAST_EVALUATIONS.labels(outcome=OUTCOME_FAILED).inc()
            logger.warning("evaluation.run.failed", extra={"forecast_run_id": run_id, "error": str(exc)})
            continue
        FORECAST_EVALUATIONS.labels(outcome=outcome).inc()
        if outcome == OUTCOME_EVALUATED:
            summary.evaluated += 1
        elif outcome == OUTCOME_SKIPPED:
            summary.skipped += 1
        else:
            summary.already_evaluated += 1

    recompute_trust_stats(db, now=now)
    return summary
