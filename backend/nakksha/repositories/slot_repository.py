# backend/nakksha/repositories/slot_repository.py
"""
Availability Slot Repository for Nakksha

Data access for concrete availability slots.

Key responsibilities:
- Filtered slot retrieval (consultant view, public view, generator lookups)
- Batched inserts where a duplicate (consultant, session type, date, start)
  is silently skipped
- Conditional updates used for booking and pattern reconciliation; each one
  is a single UPDATE whose WHERE clause carries the precondition, so callers
  learn from the affected row count whether they won
"""

from datetime import date
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.enums import BlockReason
from ..core.exceptions import RepositoryException
from ..models.availability import AvailabilitySlot, slot_key
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

_CONFLICT_COLUMNS = ["consultant_id", "session_type", "date", "start_time"]


class AvailabilitySlotRepository(BaseRepository[AvailabilitySlot]):
    """Repository for availability slot data access."""

    def __init__(self, db: Session):
        super().__init__(db, AvailabilitySlot)
        self.logger = logging.getLogger(__name__)

    # Slot Retrieval

    def find_slots(
        self,
        consultant_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        session_type: Optional[str] = None,
        is_booked: Optional[bool] = None,
        is_blocked: Optional[bool] = None,
    ) -> List[AvailabilitySlot]:
        """
        Slots of a consultant matching the filter, ordered by date then start.

        Args:
            consultant_id: Owner of the slots
            start_date: Inclusive lower date bound
            end_date: Inclusive upper date bound
            session_type: Optional session type filter
            is_booked: Filter on booked state when not None
            is_blocked: Filter on blocked state when not None

        Returns:
            Ordered list of slots
        """
        query = self._filtered(consultant_id, start_date, end_date, session_type)
        if is_booked is not None:
            query = query.filter(AvailabilitySlot.is_booked.is_(is_booked))
        if is_blocked is not None:
            query = query.filter(AvailabilitySlot.is_blocked.is_(is_blocked))
        return self._execute_query(
            query.order_by(AvailabilitySlot.date, AvailabilitySlot.start_time)
        )

    def get_existing_keys(
        self,
        consultant_id: str,
        start_date: date,
        end_date: date,
        session_type: Optional[str] = None,
    ) -> Set[str]:
        """
        Keys ``date|start_time|session_type`` of every slot in range.

        Booked and blocked slots are included; the generator must never
        recreate either.
        """
        try:
            rows = (
                self._filtered(consultant_id, start_date, end_date, session_type)
                .with_entities(
                    AvailabilitySlot.date,
                    AvailabilitySlot.start_time,
                    AvailabilitySlot.session_type,
                )
                .all()
            )
            return {slot_key(row.date.isoformat(), row.start_time, row.session_type) for row in rows}
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading existing slot keys: {str(e)}")
            raise RepositoryException(f"Failed to load existing slots: {str(e)}")

    def get_owned(self, slot_ids: List[str], consultant_id: str) -> List[AvailabilitySlot]:
        return self._execute_query(self._owned(slot_ids, consultant_id))

    def count_owned(self, slot_ids: List[str], consultant_id: str) -> int:
        try:
            return self._owned(slot_ids, consultant_id).count()
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting owned slots: {str(e)}")
            raise RepositoryException(f"Failed to count slots: {str(e)}")

    def find_bookable(
        self, consultant_id: str, session_type: str, slot_date: date, start_time: str
    ) -> Optional[AvailabilitySlot]:
        try:
            return (
                self._build_query()
                .filter(
                    AvailabilitySlot.consultant_id == consultant_id,
                    AvailabilitySlot.session_type == session_type,
                    AvailabilitySlot.date == slot_date,
                    AvailabilitySlot.start_time == start_time,
                    AvailabilitySlot.is_booked.is_(False),
                    AvailabilitySlot.is_blocked.is_(False),
                )
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding bookable slot: {str(e)}")
            raise RepositoryException(f"Failed to find slot: {str(e)}")

    def get_available_page(
        self,
        consultant_id: str,
        start_date: date,
        end_date: date,
        session_type: Optional[str],
        limit: int,
        offset: int,
    ) -> List[AvailabilitySlot]:
        """One page of open slots in (date, start_time) order."""
        query = (
            self._available(consultant_id, start_date, end_date, session_type)
            .order_by(AvailabilitySlot.date, AvailabilitySlot.start_time)
            .offset(offset)
            .limit(limit)
        )
        return self._execute_query(query)

    def count_available(
        self,
        consultant_id: str,
        start_date: date,
        end_date: date,
        session_type: Optional[str],
    ) -> int:
        try:
            return self._available(consultant_id, start_date, end_date, session_type).count()
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting available slots: {str(e)}")
            raise RepositoryException(f"Failed to count available slots: {str(e)}")

    # Slot Creation

    def insert_slots_ignoring_conflicts(self, rows: List[Dict[str, Any]]) -> int:
        """
        Insert slot rows, skipping any whose unique key already exists.

        Args:
            rows: Column dicts for new slots

        Returns:
            Number of rows actually inserted
        """
        if not rows:
            return 0

        dialect = self.dialect_name
        try:
            if dialect in ("postgresql", "sqlite"):
                insert = pg_insert if dialect == "postgresql" else sqlite_insert
                stmt = (
                    insert(AvailabilitySlot)
                    .values(rows)
                    .on_conflict_do_nothing(index_elements=_CONFLICT_COLUMNS)
                )
                result = self.db.execute(stmt)
                return max(result.rowcount or 0, 0)
            return self._insert_with_savepoints(rows)
        except SQLAlchemyError as e:
            self.logger.error(f"Error inserting slot batch: {str(e)}")
            raise RepositoryException(f"Failed to insert slots: {str(e)}")

    def _insert_with_savepoints(self, rows: List[Dict[str, Any]]) -> int:
        inserted = 0
        for row in rows:
            try:
                with self.db.begin_nested():
                    self.db.add(AvailabilitySlot(**row))
                inserted += 1
            except IntegrityError:
                self.logger.debug(
                    "Skipping duplicate slot",
                    extra={"date": str(row.get("date")), "start_time": row.get("start_time")},
                )
        return inserted

    # Slot Updates

    def update_slots(self, slot_ids: List[str], consultant_id: str, **fields: Any) -> int:
        """Apply the same field values to owned, unbooked slots; returns rows changed."""
        if not slot_ids:
            return 0
        try:
            return self._owned(slot_ids, consultant_id).filter(
                AvailabilitySlot.is_booked.is_(False)
            ).update(fields, synchronize_session="fetch")
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating slots: {str(e)}")
            raise RepositoryException(f"Failed to update slots: {str(e)}")

    def mark_booked_if_available(
        self, slot_ids: List[str], consultant_id: str, session_id: Optional[str]
    ) -> int:
        """
        Book slots that are still free.

        The WHERE clause carries ``is_booked = false``; a concurrent booker that
        already committed makes this affect fewer rows than requested.
        """
        try:
            return (
                self._owned(slot_ids, consultant_id)
                .filter(
                    AvailabilitySlot.is_booked.is_(False),
                    AvailabilitySlot.is_blocked.is_(False),
                )
                .update(
                    {AvailabilitySlot.is_booked: True, AvailabilitySlot.session_id: session_id},
                    synchronize_session="fetch",
                )
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error booking slots: {str(e)}")
            raise RepositoryException(f"Failed to book slots: {str(e)}")

    def release_booked(self, slot_ids: List[str], consultant_id: str) -> int:
        try:
            return (
                self._owned(slot_ids, consultant_id)
                .filter(AvailabilitySlot.is_booked.is_(True))
                .update(
                    {AvailabilitySlot.is_booked: False, AvailabilitySlot.session_id: None},
                    synchronize_session="fetch",
                )
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error releasing slots: {str(e)}")
            raise RepositoryException(f"Failed to release slots: {str(e)}")

    def set_blocked_for_key(
        self,
        consultant_id: str,
        session_type: str,
        day_of_week: int,
        start_time: str,
        from_date: date,
        blocked: bool,
    ) -> int:
        """
        Block (or un-block) future unbooked slots generated from one pattern key.

        Blocking marks open slots with ``BlockReason.PATTERN_REMOVED``;
        un-blocking only lifts blocks carrying that reason, so slots the
        consultant blocked by hand stay blocked. Only slots dated on or after
        ``from_date`` are touched. Booked slots are never modified.
        """
        query = self._for_key(consultant_id, session_type, day_of_week, start_time, from_date)
        if blocked:
            query = query.filter(AvailabilitySlot.is_blocked.is_(False))
            values = {
                AvailabilitySlot.is_blocked: True,
                AvailabilitySlot.blocked_reason: BlockReason.PATTERN_REMOVED.value,
            }
        else:
            query = query.filter(
                AvailabilitySlot.is_blocked.is_(True),
                AvailabilitySlot.blocked_reason == BlockReason.PATTERN_REMOVED.value,
            )
            values = {AvailabilitySlot.is_blocked: False, AvailabilitySlot.blocked_reason: None}
        try:
            return query.update(values, synchronize_session="fetch")
        except SQLAlchemyError as e:
            self.logger.error(f"Error reconciling slots: {str(e)}")
            raise RepositoryException(f"Failed to reconcile slots: {str(e)}")

    def set_end_time_for_key(
        self,
        consultant_id: str,
        session_type: str,
        day_of_week: int,
        start_time: str,
        from_date: date,
        end_time: str,
    ) -> int:
        """
        Rewrite the end time of future unbooked slots of one key.

        Manually blocked slots are included so they are correct once the
        consultant un-blocks them. Booked slots keep the interval the client
        booked.
        """
        try:
            return (
                self._for_key(consultant_id, session_type, day_of_week, start_time, from_date)
                .filter(AvailabilitySlot.end_time != end_time)
                .update({AvailabilitySlot.end_time: end_time}, synchronize_session="fetch")
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error retiming slots: {str(e)}")
            raise RepositoryException(f"Failed to update slot end times: {str(e)}")

    # Slot Deletion

    def delete_unbooked(self, slot_id: str, consultant_id: str) -> int:
        try:
            return (
                self._build_query()
                .filter(
                    AvailabilitySlot.id == slot_id,
                    AvailabilitySlot.consultant_id == consultant_id,
                    AvailabilitySlot.is_booked.is_(False),
                )
                .delete(synchronize_session="fetch")
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to delete slot: {str(e)}")

    # Query builders

    def _filtered(
        self,
        consultant_id: str,
        start_date: Optional[date],
        end_date: Optional[date],
        session_type: Optional[str],
    ) -> Query:
        query = self._build_query().filter(AvailabilitySlot.consultant_id == consultant_id)
        if start_date is not None:
            query = query.filter(AvailabilitySlot.date >= start_date)
        if end_date is not None:
            query = query.filter(AvailabilitySlot.date <= end_date)
        if session_type:
            query = query.filter(AvailabilitySlot.session_type == session_type)
        return query

    def _available(
        self,
        consultant_id: str,
        start_date: date,
        end_date: date,
        session_type: Optional[str],
    ) -> Query:
        return self._filtered(consultant_id, start_date, end_date, session_type).filter(
            AvailabilitySlot.is_booked.is_(False),
            AvailabilitySlot.is_blocked.is_(False),
        )

    def _for_key(
        self,
        consultant_id: str,
        session_type: str,
        day_of_week: int,
        start_time: str,
        from_date: date,
    ) -> Query:
        """Unbooked slots of one pattern key dated on or after ``from_date``."""
        return self._build_query().filter(
            AvailabilitySlot.consultant_id == consultant_id,
            AvailabilitySlot.session_type == session_type,
            AvailabilitySlot.day_of_week == day_of_week,
            AvailabilitySlot.start_time == start_time,
            AvailabilitySlot.date >= from_date,
            AvailabilitySlot.is_booked.is_(False),
        )

    def _owned(self, slot_ids: Iterable[str], consultant_id: str) -> Query:
        return self._build_query().filter(
            AvailabilitySlot.id.in_(list(slot_ids)),
            AvailabilitySlot.consultant_id == consultant_id,
        )
