# backend/nakksha/repositories/factory.py
"""
Repository Factory for Nakksha

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

# Avoid circular imports
if TYPE_CHECKING:
    from .consultant_repository import ConsultantRepository
    from .job_status_repository import JobStatusRepository
    from .pattern_repository import WeeklyPatternRepository
    from .slot_repository import AvailabilitySlotRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_base_repository(db: Session, model) -> BaseRepository:
        """Create a generic base repository for any model."""
        return BaseRepository(db, model)

    @staticmethod
    def create_pattern_repository(db: Session) -> "WeeklyPatternRepository":
        """Create repository for weekly pattern operations."""
        from .pattern_repository import WeeklyPatternRepository

        return WeeklyPatternRepository(db)

    @staticmethod
    def create_slot_repository(db: Session) -> "AvailabilitySlotRepository":
        """Create repository for availability slot operations."""
        from .slot_repository import AvailabilitySlotRepository

        return AvailabilitySlotRepository(db)

    @staticmethod
    def create_consultant_repository(db: Session) -> "ConsultantRepository":
        from .consultant_repository import ConsultantRepository

        return ConsultantRepository(db)

    @staticmethod
    def create_job_status_repository(db: Session) -> "JobStatusRepository":
        from .job_status_repository import JobStatusRepository

        return JobStatusRepository(db)
