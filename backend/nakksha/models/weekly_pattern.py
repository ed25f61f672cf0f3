# backend/nakksha/models/weekly_pattern.py
"""
Weekly availability pattern model.

A pattern is a recurring template ("every Wednesday 14:00-15:00, personal
sessions") from which concrete availability slots are generated. Times are
stored as zero-padded "HH:MM" strings so lexicographic comparison matches
chronological order.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.constants import DEFAULT_TIMEZONE
from ..core.ulid_helper import generate_ulid
from ..database import Base


class WeeklyAvailabilityPattern(Base):
    __tablename__ = "weekly_availability_patterns"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    consultant_id = Column(
        String(26), ForeignKey("consultants.id", ondelete="CASCADE"), nullable=False
    )
    session_type = Column(String(16), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday .. 6=Saturday
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    timezone = Column(String(50), nullable=False, default=DEFAULT_TIMEZONE)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    consultant = relationship("Consultant", back_populates="patterns")

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_pattern_day_of_week"),
        CheckConstraint("start_time < end_time", name="ck_pattern_time_order"),
        Index(
            "idx_patterns_consultant_type_day",
            "consultant_id",
            "session_type",
            "day_of_week",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<WeeklyAvailabilityPattern {self.session_type} day={self.day_of_week} "
            f"{self.start_time}-{self.end_time}>"
        )
