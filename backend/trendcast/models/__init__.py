from .comparison import Comparison
from .interest_daily import InterestDaily
from .warmup_job import WarmupJob
from .forecast_run import ForecastRun, ForecastPoint
from .forecast_evaluation import ForecastEvaluation, ForecastTrustStats


__all__ = [
    "Comparison",
    "InterestDaily",
    "WarmupJob",
    "ForecastRun",
    "ForecastPoint",
    "ForecastEvaluation",
    "ForecastTrustStats",
]
