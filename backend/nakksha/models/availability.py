# backend/nakksha/models/availability.py
"""
Availability slot model.

A slot is one concrete bookable interval on a specific date. Slots are
generated from weekly patterns and linked to them only through
(session_type, day_of_week, start_time); there is no foreign key.

Booked slots are never hard-deleted. Blocked slots stay in the table so the
generator does not recreate them, but they are hidden from clients.
``blocked_reason`` separates consultant blocks from blocks made when a
pattern stopped producing the slot; only the latter are ever restored.
"""

import logging

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base

logger = logging.getLogger(__name__)


class AvailabilitySlot(Base):
    __tablename__ = "availability_slots"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    consultant_id = Column(
        String(26), ForeignKey("consultants.id", ondelete="CASCADE"), nullable=False
    )
    session_type = Column(String(16), nullable=False)
    date = Column(Date, nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday .. 6=Saturday
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    is_booked = Column(Boolean, nullable=False, default=False)
    is_blocked = Column(Boolean, nullable=False, default=False)
    blocked_reason = Column(String(32), nullable=True)  # BlockReason value while blocked
    session_id = Column(String(26), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "consultant_id",
            "session_type",
            "date",
            "start_time",
            name="uq_availability_slot_key",
        ),
        # Public read path: unbooked, unblocked slots for a consultant in a date range
        Index(
            "idx_slots_public_lookup",
            "consultant_id",
            "is_booked",
            "is_blocked",
            "date",
            "session_type",
        ),
        # Reconciliation path
        Index(
            "idx_slots_pattern_key",
            "consultant_id",
            "session_type",
            "day_of_week",
            "start_time",
        ),
    )

    def __repr__(self) -> str:
        state = "booked" if self.is_booked else "blocked" if self.is_blocked else "open"
        return f"<AvailabilitySlot {self.date} {self.start_time}-{self.end_time} {state}>"


def slot_key(date_str: str, start_time: str, session_type: str) -> str:
    return f"{date_str}|{start_time}|{session_type}"
