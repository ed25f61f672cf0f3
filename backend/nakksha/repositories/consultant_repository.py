# backend/nakksha/repositories/consultant_repository.py
"""Read access to consultants for slug resolution and scheduling."""

from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.consultant import Consultant
from ..models.weekly_pattern import WeeklyAvailabilityPattern
from .base_repository import BaseRepository


class ConsultantRepository(BaseRepository[Consultant]):
    def __init__(self, db: Session):
        super().__init__(db, Consultant)

    def get_by_slug(self, slug: str) -> Optional[Consultant]:
        return self.find_one_by(slug=slug)

    def get_by_slug_or_id(self, identifier: str) -> Optional[Consultant]:
        """Public URLs carry the slug; internal callers may pass the id instead."""
        return self.get_by_slug(identifier) or self.get_by_id(identifier)

    def get_ids_with_active_patterns(self) -> List[str]:
        try:
            rows = (
                self.db.query(WeeklyAvailabilityPattern.consultant_id)
                .filter(WeeklyAvailabilityPattern.is_active.is_(True))
                .distinct()
                .order_by(WeeklyAvailabilityPattern.consultant_id)
                .all()
            )
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing consultants with active patterns: {str(e)}")
            raise RepositoryException(f"Failed to list consultants: {str(e)}")

    def lock_for_update(self, consultant_id: str) -> Optional[Consultant]:
        """
        Row-lock the consultant until the current transaction ends.

        Pattern mutations take this lock first so their overlap check and
        write cannot interleave with another mutation of the same consultant.
        SQLite has no row locks and serializes writers itself.
        """
        try:
            return (
                self.db.query(Consultant)
                .filter(Consultant.id == consultant_id)
                .with_for_update()
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking consultant {consultant_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock consultant: {str(e)}")
