from __future__ import annotations

import logging
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from trendcast.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./trendcast.db"


def _enforce_ssl_requirements(raw_url: str) -> str:
    """Add ``sslmode=require`` to Postgres URLs and refuse a URL whose user is not DB_APP_ROLE."""
    url_obj = make_url(raw_url)

    if settings.DB_REQUIRE_SSL and url_obj.get_backend_name().startswith("postgresql"):
        if "sslmode" not in url_obj.query:
            url_obj = url_obj.set(query={**url_obj.query, "sslmode": "require"})

    expected_role = settings.DB_APP_ROLE
    if expected_role and url_obj.username and url_obj.username != expected_role:
        raise RuntimeError(
            f"DATABASE_URL user '{url_obj.username}' does not match required role '{expected_role}'"
        )

    return url_obj.render_as_string(hide_password=False)


def _build_engine(url: str) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, future=True)
    connect_args = {"check_same_thread": False}
    # an in-memory database lives only as long as its single connection
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool, future=True)
    return create_engine(url, connect_args=connect_args, future=True)


DATABASE_URL = _enforce_ssl_requirements(settings.DATABASE_URL or DEFAULT_DATABASE_URL)
ENGINE: Engine = _build_engine(DATABASE_URL)
SessionLocal: sessionmaker[Session] = sessionmaker(bind=ENGINE, autocommit=False, autoflush=False, future=True)

logger.info("db.engine", extra={"url": ENGINE.url.render_as_string(hide_password=True)})


def get_engine() -> Engine:
    return ENGINE


def get_sessionmaker() -> sessionmaker[Session]:
    return SessionLocal


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create any missing forecast pipeline tables; alembic owns real migrations."""
    from trendcast import models  # noqa: F401  pylint: disable=import-outside-toplevel
    from trendcast.db.base import Base  # pylint: disable=import-outside-toplevel

    Base.metadata.create_all(bind=get_engine())
