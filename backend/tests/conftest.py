import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure backend/ is importable as the top-level "trendcast" package even when pytest runs from repo root
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# Ensure the application runs in test/sqlite mode *before* importing any trendcast modules
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CACHE_PROVIDER", "memory")
os.environ.setdefault("WARMUP_SECRET", "warmup-test-secret")
os.environ.setdefault("CRON_SECRET", "cron-test-secret")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

# Import the DB session module first so we can patch it before the app is imported
import trendcast.db.session as app_db_session  # type: ignore

# --- Use a single in-memory SQLite DB for the whole test session ---
ENGINE = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    future=True,
)
SessionTesting = sessionmaker(bind=ENGINE, autocommit=False, autoflush=False, future=True)

# --- Ensure tests and app code share the SAME in-memory engine/sessionmaker ---
setattr(app_db_session, "ENGINE", ENGINE)
app_db_session.SessionLocal = SessionTesting
app_db_session.get_engine = lambda: ENGINE            # type: ignore
app_db_session.get_sessionmaker = lambda: SessionTesting  # type: ignore

from trendcast.cache.store import MemoryCacheStore
from trendcast.db.base import Base
from trendcast.db.session import get_db
from trendcast.main import app

# Ensure schema exists even for modules that instantiate TestClient at import time
Base.metadata.create_all(bind=ENGINE)



@pytest.fixture(scope="session")
def _db_engine():
    Base.metadata.create_all(bind=ENGINE)
    yield ENGINE


@pytest.fixture(scope="session")
def _session_factory(_db_engine):
    yield SessionTesting


@pytest.fixture(scope="function")
def reset_db(_db_engine):
    Base.metadata.drop_all(bind=_db_engine)
    Base.metadata.create_all(bind=_db_engine)
    yield
    Base.metadata.drop_all(bind=_db_engine)
    Base.metadata.create_all(bind=_db_engine)


@pytest.fixture(scope="function")
def db(_session_factory, reset_db):
    session = _session_factory()

    def _override_get_db():
        try:
            yield session
        finally:
            pass

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture(scope="function")
def cache():
    """A fresh process-scoped store, installed on the app for the test."""
    store = MemoryCacheStore()
    previous = app.state.cache
    app.state.cache = store
    try:
        yield store
    finally:
        store.clear()
        app.state.cache = previous


@pytest.fixture(scope="function")
def client(db, cache):
    with TestClient(app) as c:
        yield c
