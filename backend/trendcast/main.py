# trendcast/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from trendcast.cache.store import build_cache_store
from trendcast.config import get_settings
from trendcast.core.secrets import SharedSecretError, shared_secret_exception_handler
from trendcast.db.session import init_db
from trendcast.observability.logging import configure_logging
from trendcast.observability.metrics import router as observability_router
from trendcast.observability.middleware import register_request_middleware, unhandled_exception_handler
from trendcast.routers.comparison import router as comparison_router
from trendcast.routers.cron import router as cron_router
from trendcast.routers.forecasts import router as forecasts_router
from trendcast.routers.health import router as health_router
from trendcast.routers.jobs import router as jobs_router
from trendcast.scheduler.setup import init_scheduler, shutdown_scheduler
from trendcast.schemas.common import API_VERSION

configure_logging()


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="TrendCast Forecast Pipeline", version=API_VERSION)

    if settings.TRUSTED_HOSTS:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.TRUSTED_HOSTS)

    register_request_middleware(app)
    app.add_exception_handler(SharedSecretError, shared_secret_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # One cache store per process, shared by every request.
    app.state.cache = build_cache_store(settings)

    @app.on_event("startup")
    async def _startup() -> None:
        try:
            init_db()
        except Exception:
            logging.getLogger(__name__).exception("Failed to create tables on startup")
        await init_scheduler(app)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await shutdown_scheduler()

    app.include_router(health_router)
    app.include_router(observability_router)
    app.include_router(comparison_router)
    app.include_router(forecasts_router)
    app.include_router(jobs_router)
    app.include_router(cron_router)
    return app


app = create_app()
