# backend/nakksha/repositories/pattern_repository.py
"""
Weekly Pattern Repository for Nakksha

Data access for recurring weekly availability patterns. Every query is
scoped to a consultant.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.weekly_pattern import WeeklyAvailabilityPattern
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class WeeklyPatternRepository(BaseRepository[WeeklyAvailabilityPattern]):
    def __init__(self, db: Session):
        super().__init__(db, WeeklyAvailabilityPattern)

    def get_for_consultant(
        self, pattern_id: str, consultant_id: str
    ) -> Optional[WeeklyAvailabilityPattern]:
        return self.find_one_by(id=pattern_id, consultant_id=consultant_id)

    def list_for_consultant(
        self,
        consultant_id: str,
        session_type: Optional[str] = None,
        active_only: bool = False,
    ) -> List[WeeklyAvailabilityPattern]:
        """
        Patterns of a consultant ordered by session type, weekday and start.

        Args:
            consultant_id: Owner of the patterns
            session_type: Optional session type filter
            active_only: Skip deactivated patterns

        Returns:
            Ordered list of patterns
        """
        query = self._build_query().filter(
            WeeklyAvailabilityPattern.consultant_id == consultant_id
        )
        if session_type:
            query = query.filter(WeeklyAvailabilityPattern.session_type == session_type)
        if active_only:
            query = query.filter(WeeklyAvailabilityPattern.is_active.is_(True))

        query = query.order_by(
            WeeklyAvailabilityPattern.session_type,
            WeeklyAvailabilityPattern.day_of_week,
            WeeklyAvailabilityPattern.start_time,
        )
        return self._execute_query(query)

    def find_overlapping(
        self,
        consultant_id: str,
        session_type: str,
        day_of_week: int,
        start_time: str,
        end_time: str,
        exclude_id: Optional[str] = None,
    ) -> List[WeeklyAvailabilityPattern]:
        """Patterns on the same consultant/type/day whose [start, end) intersects the given one."""
        query = self._build_query().filter(
            WeeklyAvailabilityPattern.consultant_id == consultant_id,
            WeeklyAvailabilityPattern.session_type == session_type,
            WeeklyAvailabilityPattern.day_of_week == day_of_week,
            WeeklyAvailabilityPattern.start_time < end_time,
            WeeklyAvailabilityPattern.end_time > start_time,
        )
        if exclude_id:
            query = query.filter(WeeklyAvailabilityPattern.id != exclude_id)
        return self._execute_query(query)

    def delete_for_consultant(self, consultant_id: str) -> int:
        try:
            return (
                self.db.query(WeeklyAvailabilityPattern)
                .filter(WeeklyAvailabilityPattern.consultant_id == consultant_id)
                .delete(synchronize_session="fetch")
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting patterns for {consultant_id}: {str(e)}")
            raise RepositoryException(f"Failed to delete patterns: {str(e)}")

    def bulk_create(self, rows: List[Dict[str, Any]]) -> List[WeeklyAvailabilityPattern]:
        try:
            entities = [WeeklyAvailabilityPattern(**row) for row in rows]
            self.db.add_all(entities)
            self.db.flush()
            return entities
        except SQLAlchemyError as e:
            self.logger.error(f"Error bulk creating patterns: {str(e)}")
            raise RepositoryException(f"Failed to bulk create patterns: {str(e)}")
