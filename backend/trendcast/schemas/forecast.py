# trendcast/schemas/forecast.py
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class TrustStatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    period: str
    total_evaluated: int
    winner_accuracy_percent: Optional[float] = None
    interval_coverage_percent: Optional[float] = None
    last_90_days_accuracy: Optional[float] = None
    sample_size: int
    last_calculated: datetime


class EvaluationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    evaluated_at: datetime
    winner_correct: Optional[bool] = None
    direction_correct_a: Optional[bool] = None
    direction_correct_b: Optional[bool] = None
    interval_hit_rate_80: Optional[float] = None
    interval_hit_rate_95: Optional[float] = None
    mae: Optional[float] = None
    mape: Optional[float] = None
    evaluated_points: int


class VerifiedPointOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    term: str
    point_date: date
    value: float
    lower80: float
    upper80: float
    lower95: float
    upper95: float
    actual_value: Optional[float] = None


class VerifiedRunOut(BaseModel):
    id: int
    slug: str
    term_a: str
    term_b: str
    timeframe: str
    horizon: int
    computed_at: datetime
    evaluated_at: Optional[datetime] = None
    winner_probability: float
    evaluation: Optional[EvaluationOut] = None
    points: list[VerifiedPointOut] = []
