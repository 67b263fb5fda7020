from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from trendcast.db.base import Base
from trendcast.db.types import JSON_PAYLOAD
from trendcast.utils.clock import utcnow

TERM_A = "termA"
TERM_B = "termB"


class ForecastRun(Base):
    __tablename__ = "forecast_runs"
    id = Column(Integer, primary_key=True)
    comparison_id = Column(Integer, ForeignKey("comparisons.id", ondelete="CASCADE"), nullable=False, index=True)
    timeframe = Column(String(32), nullable=False)
    geo = Column(String(16), nullable=False, default="")
    horizon = Column(Integer, nullable=False)
    data_hash = Column(String(64), nullable=False)
    engine_version = Column(String(32), nullable=False)
    model_term_a = Column(String(64), nullable=True)
    model_term_b = Column(String(64), nullable=True)
    confidence_score_a = Column(Float, nullable=True)
    confidence_score_b = Column(Float, nullable=True)
    metrics_a = Column(JSON_PAYLOAD, nullable=True)
    metrics_b = Column(JSON_PAYLOAD, nullable=True)
    warnings_a = Column(JSON_PAYLOAD, nullable=True)
    warnings_b = Column(JSON_PAYLOAD, nullable=True)
    winner_probability = Column(Float, nullable=False)  # P(termB ends higher), 0-100
    expected_margin = Column(Float, nullable=True)
    lead_change_risk = Column(String(16), nullable=True)
    computed_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    horizon_ends_at = Column(DateTime, nullable=False, index=True)
    evaluated_at = Column(DateTime, nullable=True, index=True)
    # set when an evaluation pass found no realized data for the run
    last_evaluation_attempt_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("comparison_id", "timeframe", "horizon", "data_hash", name="uq_forecast_run_key"),
    )

    comparison = relationship("Comparison")
    points = relationship(
        "ForecastPoint",
        back_populates="run",
        cascade="all,delete-orphan",
        order_by=lambda: [ForecastPoint.term, ForecastPoint.point_date],
    )
    evaluation = relationship("ForecastEvaluation", back_populates="run", uselist=False)


class ForecastPoint(Base):
    __tablename__ = "forecast_points"
    id = Column(Integer, primary_key=True)
    forecast_run_id = Column(Integer, ForeignKey("forecast_runs.id", ondelete="CASCADE"), nullable=False)
    term = Column(String(8), nullable=False)  # "termA" | "termB"
    point_date = Column(Date, nullable=False)
    value = Column(Float, nullable=False)
    lower80 = Column(Float, nullable=False)
    upper80 = Column(Float, nullable=False)
    lower95 = Column(Float, nullable=False)
    upper95 = Column(Float, nullable=False)
    actual_value = Column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint("forecast_run_id", "term", "point_date", name="uq_forecast_point_day"),
    )

    run = relationship("ForecastRun", back_populates="points")
