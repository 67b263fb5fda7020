from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import date
from typing import List, Optional, Protocol, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from trendcast.errors import StoreUnavailableError
from trendcast.forecast.series import SeriesPoint
from trendcast.models.comparison import Comparison
from trendcast.models.interest_daily import InterestDaily

logger = logging.getLogger(__name__)


class SeriesAccessor(Protocol):
    """Read-only source of realized interest data for a comparison."""

    def get_terms(self, slug: str, timeframe: str, geo: str) -> Optional[Tuple[str, str]]: ...

    def get_series(
        self,
        slug: str,
        timeframe: str,
        geo: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[SeriesPoint]: ...


class DatabaseSeriesAccessor:
    """Reads ``comparisons`` + ``interest_daily``; the default accessor."""

    def __init__(self, db: Session):
        self.db = db

    def _comparison(self, slug: str, timeframe: str, geo: str) -> Optional[Comparison]:
        stmt = select(Comparison).where(
            Comparison.slug == slug,
            Comparison.timeframe == timeframe,
            Comparison.geo == (geo or ""),
        )
        try:
            return self.db.execute(stmt).scalars().first()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"could not load comparison {slug}: {exc}") from exc

    def get_terms(self, slug: str, timeframe: str, geo: str) -> Optional[Tuple[str, str]]:
        cmp = self._comparison(slug, timeframe, geo)
        if cmp is None:
            return None
        return cmp.term_a, cmp.term_b

    def get_series(
        self,
        slug: str,
        timeframe: str,
        geo: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[SeriesPoint]:
        cmp = self._comparison(slug, timeframe, geo)
        if cmp is None:
            return []
        stmt = select(InterestDaily).where(InterestDaily.comparison_id == cmp.id)
        if start:
            stmt = stmt.where(InterestDaily.point_date >= start)
        if end:
            stmt = stmt.where(InterestDaily.point_date <= end)
        stmt = stmt.order_by(InterestDaily.point_date.asc(), InterestDaily.term.asc())
        try:
            rows = self.db.execute(stmt).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"could not load series for {slug}: {exc}") from exc

        by_day: "OrderedDict[date, dict]" = OrderedDict()
        for row in rows:
            by_day.setdefault(row.point_date, {})[row.term] = float(row.value)
        return [SeriesPoint(date=d, values=vals) for d, vals in by_day.items()]
