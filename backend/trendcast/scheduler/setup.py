from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pytz import timezone

from trendcast.config import get_settings
from trendcast.db.session import DATABASE_URL
from trendcast.scheduler.jobs import drain_warmups, evaluate_forecasts, reap_stuck_warmups

settings = get_settings()

# Global scheduler instance; only started when SCHEDULER_ENABLED is true.
scheduler = AsyncIOScheduler(
    jobstores={
        "default": SQLAlchemyJobStore(url=(settings.SCHEDULER_DB_URL or DATABASE_URL))
    },
    timezone=timezone(settings.SCHEDULER_TZ),
)


def configure_jobs() -> None:
    """
    Register all recurring jobs with the scheduler.

    - evaluate-forecasts: daily evaluation batch + trust stats rollup
    - drain-warmups: periodic warmup queue drain (shared cache only)
    - reap-stuck-warmups: fail jobs stuck in running (only when a lease is configured)
    """
    scheduler.add_job(
        evaluate_forecasts,
        "cron",
        id="evaluate-forecasts",
        hour=4,
        minute=0,
        replace_existing=True,
        misfire_grace_time=3600,
        coalesce=True,
        max_instances=1,
    )
    if settings.CACHE_PROVIDER == "redis":
        scheduler.add_job(
            drain_warmups,
            "interval",
            id="drain-warmups",
            seconds=settings.WARMUP_DRAIN_INTERVAL_SECONDS,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
    if settings.WARMUP_STUCK_JOB_TIMEOUT_MINUTES is not None:
        scheduler.add_job(
            reap_stuck_warmups,
            "interval",
            id="reap-stuck-warmups",
            minutes=max(1, settings.WARMUP_STUCK_JOB_TIMEOUT_MINUTES // 2),
            replace_existing=True,
            coalesce=True,
        )


async def init_scheduler(app) -> None:
    """
    FastAPI startup hook: initialize and start the APScheduler instance
    if SCHEDULER_ENABLED is true.
    """
    if not settings.SCHEDULER_ENABLED:
        return
    configure_jobs()
    scheduler.start()


async def shutdown_scheduler() -> None:
    """
    FastAPI shutdown hook: stop the scheduler cleanly.
    """
    if scheduler.running:
        scheduler.shutdown(wait=False)
