from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from trendcast.db.base import Base
from trendcast.utils.clock import utcnow


class ForecastEvaluation(Base):
    __tablename__ = "forecast_evaluations"
    id = Column(Integer, primary_key=True)
    forecast_run_id = Column(
        Integer, ForeignKey("forecast_runs.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    evaluated_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    winner_correct = Column(Boolean, nullable=True)
    direction_correct_a = Column(Boolean, nullable=True)
    direction_correct_b = Column(Boolean, nullable=True)
    interval_hit_rate_80 = Column(Float, nullable=True)   # 0–100
    interval_hit_rate_95 = Column(Float, nullable=True)
    mae = Column(Float, nullable=True)
    mape = Column(Float, nullable=True)
    evaluated_points = Column(Integer, nullable=False, default=0)

    run = relationship("ForecastRun", back_populates="evaluation")


class ForecastTrustStats(Base):
    __tablename__ = "forecast_trust_stats"
    id = Column(Integer, primary_key=True)
    period = Column(String(32), nullable=False, unique=True)
    total_evaluated = Column(Integer, nullable=False, default=0)
    winner_accuracy_percent = Column(Float, nullable=True)
    interval_coverage_percent = Column(Float, nullable=True)
    last_90_days_accuracy = Column(Float, nullable=True)
    sample_size = Column(Integer, nullable=False, default=0)
    last_calculated = Column(DateTime, nullable=False, default=utcnow)
