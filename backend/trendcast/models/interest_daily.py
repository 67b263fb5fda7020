from sqlalchemy import Column, Date, Float, ForeignKey, Index, Integer, PrimaryKeyConstraint, String
from sqlalchemy.orm import relationship

from trendcast.db.base import Base


class InterestDaily(Base):
    """One day's normalized interest (0-100) for one term of a comparison."""

    __tablename__ = "interest_daily"

    comparison_id = Column(Integer, ForeignKey("comparisons.id", ondelete="CASCADE"), nullable=False)
    point_date = Column(Date, nullable=False)
    term = Column(String(255), nullable=False)
    value = Column(Float, nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint("comparison_id", "point_date", "term", name="pk_interest_daily"),
        Index("ix_interest_daily_cmp_date", "comparison_id", "point_date"),
    )

    comparison = relationship("Comparison", back_populates="interest")
