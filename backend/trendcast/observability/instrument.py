from __future__ import annotations

import functools
import time
from typing import Any, Callable, TypeVar

import structlog

F = TypeVar("F", bound=Callable[..., Any])

logger = structlog.get_logger("job")


def _outcome_fields(result: Any) -> dict:
    """Counts worth logging from a job's return value."""
    if result is None:
        return {"processed": 0}
    if isinstance(result, bool):
        return {"success": result}
    if isinstance(result, int):
        return {"processed": result}
    if isinstance(result, (list, tuple)):
        return {"processed": len(result)}
    to_dict = getattr(result, "to_dict", None)
    if callable(to_dict):
        return {k: v for k, v in to_dict().items() if isinstance(v, (bool, int, str))}
    return {}


def log_job(name: str) -> Callable[[F], F]:
    """Time a pipeline job and log its start, outcome counts, or failure."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            start = time.perf_counter()
            logger.info("job.start", job=name)
            try:
                result = func(*args, **kwargs)
            except Exception:
                logger.exception("job.error", job=name, duration_ms=round((time.perf_counter() - start) * 1000, 2))
                raise
            logger.info(
                "job.completed",
                job=name,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                **_outcome_fields(result),
            )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
