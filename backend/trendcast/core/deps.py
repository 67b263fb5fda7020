from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from trendcast.cache.store import CacheStore
from trendcast.db.session import get_db
from trendcast.services.series import DatabaseSeriesAccessor, SeriesAccessor


def get_cache(request: Request) -> CacheStore:
    """The process-wide store created in the app lifespan."""
    return request.app.state.cache


def get_series_accessor(db: Session = Depends(get_db)) -> SeriesAccessor:
    return DatabaseSeriesAccessor(db)
