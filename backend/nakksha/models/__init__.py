"""SQLAlchemy models; importing this package registers every table on Base.metadata."""

from .availability import AvailabilitySlot
from .consultant import Consultant
from .job_status import JobStatus
from .weekly_pattern import WeeklyAvailabilityPattern

__all__ = [
    "AvailabilitySlot",
    "Consultant",
    "JobStatus",
    "WeeklyAvailabilityPattern",
]
