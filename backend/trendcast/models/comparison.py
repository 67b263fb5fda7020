from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from trendcast.db.base import Base
from trendcast.utils.clock import utcnow


class Comparison(Base):
    __tablename__ = "comparisons"
    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(255), nullable=False, index=True)
    term_a = Column(String(255), nullable=False)
    term_b = Column(String(255), nullable=False)
    timeframe = Column(String(32), nullable=False, default="12m")
    geo = Column(String(16), nullable=False, default="")
    category = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("slug", "timeframe", "geo", name="uq_comparison_slug_tf_geo"),)

    interest = relationship("InterestDaily", back_populates="comparison", cascade="all,delete-orphan")
