from importlib import import_module

from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Import model modules so their tables register with Base.metadata.
# These imports must come before any Base.metadata.create_all(...)
_model_modules = [
    "comparison",
    "interest_daily",
    "warmup_job",
    "forecast_run",
    "forecast_evaluation",
]

for _mod in _model_modules:
    import_module(f"trendcast.models.{_mod}")
