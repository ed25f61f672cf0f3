# backend/nakksha/models/consultant.py
"""
Consultant model.

Consultant accounts are owned by the wider platform (registration, approval,
profiles). The engine only needs the public slug, the display name and the
consultant's timezone.
"""

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.constants import DEFAULT_TIMEZONE
from ..core.ulid_helper import generate_ulid
from ..database import Base


class Consultant(Base):
    __tablename__ = "consultants"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    slug = Column(String(100), nullable=False, unique=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")
    timezone = Column(String(50), nullable=False, default=DEFAULT_TIMEZONE)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    patterns = relationship(
        "WeeklyAvailabilityPattern",
        back_populates="consultant",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Consultant {self.slug}>"
