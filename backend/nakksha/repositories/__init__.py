"""Repository layer: data access without transaction control."""

from .base_repository import BaseRepository
from .consultant_repository import ConsultantRepository
from .factory import RepositoryFactory
from .job_status_repository import JobStatusRepository
from .pattern_repository import WeeklyPatternRepository
from .slot_repository import AvailabilitySlotRepository

__all__ = [
    "AvailabilitySlotRepository",
    "BaseRepository",
    "ConsultantRepository",
    "JobStatusRepository",
    "RepositoryFactory",
    "WeeklyPatternRepository",
]
