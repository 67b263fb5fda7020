from sqlalchemy import Column, DateTime, Index, Integer, String, Text

from trendcast.db.base import Base
from trendcast.utils.clock import utcnow

STATUS_QUEUED = "queued"
STATUS_RUNNING = "running"
STATUS_READY = "ready"
STATUS_FAILED = "failed"


class WarmupJob(Base):
    __tablename__ = "warmup_jobs"
    id = Column(Integer, primary_key=True)
    slug = Column(String(255), nullable=False, index=True)
    timeframe = Column(String(32), nullable=False)
    geo = Column(String(16), nullable=False, default="")
    data_hash = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default=STATUS_QUEUED)
    attempts = Column(Integer, nullable=False, default=0)
    debug_id = Column(String(64), nullable=True)
    last_error = Column(Text, nullable=True)
    # Holds the fingerprint while queued/running and NULL once terminal; the unique
    # index is what allows only one active job per fingerprint.
    active_key = Column(String(512), nullable=True, unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("ix_warmup_jobs_status_created", "status", "created_at"),)
