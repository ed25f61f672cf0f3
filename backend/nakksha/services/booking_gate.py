# backend/nakksha/services/booking_gate.py
"""
Booking Gate for Nakksha

The only path that flips a slot's booked state. A slot is booked by at most
one client: booking is one conditional UPDATE guarded by ``is_booked =
false``, and when fewer rows change than were requested the whole request is
rolled back. Two callers that both read a slot as free therefore cannot both
win; the second sees zero affected rows and gets a conflict.
"""

from datetime import date
import logging
from typing import Any, Dict, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.exceptions import (
    NotFoundException,
    SlotAlreadyBookedException,
    ValidationException,
)
from ..models.availability import AvailabilitySlot
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .cache_service import CacheService
from .slot_manager import OWNERSHIP_MESSAGE

logger = logging.getLogger(__name__)


class BookingGate(BaseService):
    """Atomic book/release/delete for availability slots."""

    def __init__(self, db: Session, cache: Optional[CacheService] = None):
        super().__init__(db, cache)
        self.slot_repository = RepositoryFactory.create_slot_repository(db)

    @BaseService.measure_operation("set_booked_status")
    def set_booked_status(
        self,
        slot_ids: Sequence[str],
        consultant_id: str,
        is_booked: bool,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Book or release slots owned by a consultant.

        Args:
            slot_ids: Slots to change; duplicates are ignored
            consultant_id: Owner of the slots
            is_booked: True to book, False to release
            session_id: Session the booking belongs to

        Returns:
            {"updated_count": n, "slot_ids": [...]}

        Raises:
            ValidationException: If a slot is missing or foreign, or is blocked
            SlotAlreadyBookedException: If another booking won the race
        """
        ids = list(dict.fromkeys(slot_ids))
        if not ids:
            raise ValidationException("At least one availability slot is required")

        if self.slot_repository.count_owned(ids, consultant_id) != len(ids):
            raise ValidationException(OWNERSHIP_MESSAGE)

        if not is_booked:
            with self.transaction():
                updated = self.slot_repository.release_booked(ids, consultant_id)
            prometheus_metrics.record_booking_attempt("released")
            self._after_write(consultant_id, "release_slots", ids, updated, session_id)
            return {"updated_count": updated, "slot_ids": ids}

        with self.transaction():
            updated = self.slot_repository.mark_booked_if_available(ids, consultant_id, session_id)
            if updated != len(ids):
                # Undo the partial booking before reading why the rest failed.
                self.db.rollback()
                self._raise_unavailable(ids, consultant_id, updated)

        prometheus_metrics.record_booking_attempt("booked")
        self._after_write(consultant_id, "book_slots", ids, updated, session_id)
        return {"updated_count": updated, "slot_ids": ids}

    @BaseService.measure_operation("is_slot_bookable")
    def is_slot_bookable(self, slot_id: str) -> bool:
        slot = self.slot_repository.get_by_id(slot_id)
        return bool(slot and not slot.is_booked and not slot.is_blocked)

    @BaseService.measure_operation("find_bookable_slot")
    def find_bookable_slot(
        self, consultant_id: str, session_type: str, slot_date: date, start_time: str
    ) -> AvailabilitySlot:
        """
        Resolve the open slot a client picked by date and time.

        Raises:
            NotFoundException: If no open slot matches
        """
        slot = self.slot_repository.find_bookable(consultant_id, session_type, slot_date, start_time)
        if slot is None:
            raise NotFoundException(
                "This time slot is not available for booking.",
                details={
                    "date": slot_date.isoformat(),
                    "start_time": start_time,
                    "session_type": session_type,
                },
            )
        return slot

    @BaseService.measure_operation("delete_slot")
    def delete_slot(self, slot_id: str, consultant_id: str) -> Dict[str, Any]:
        """
        Hard-delete an unbooked slot.

        Raises:
            NotFoundException: If the slot does not exist for this consultant
            ValidationException: If the slot is booked
        """
        with self.transaction():
            deleted = self.slot_repository.delete_unbooked(slot_id, consultant_id)
            if not deleted:
                slot = self.slot_repository.find_one_by(id=slot_id, consultant_id=consultant_id)
                if slot is None:
                    raise NotFoundException(
                        "Availability slot not found", details={"slot_id": slot_id}
                    )
                raise ValidationException(
                    "Cannot delete a booked availability slot", details={"slot_id": slot_id}
                )

        self.invalidate_availability(consultant_id)
        self.log_operation("delete_slot", consultant_id=consultant_id, slot_id=slot_id)
        return {"deleted": True, "slot_id": slot_id}

    def _raise_unavailable(self, ids: Sequence[str], consultant_id: str, updated: int) -> None:
        slots = self.slot_repository.get_owned(ids, consultant_id)
        blocked = [s.id for s in slots if s.is_blocked and not s.is_booked]
        taken = [s.id for s in slots if s.is_booked]
        prometheus_metrics.record_booking_attempt("conflict")
        self.logger.info(
            "Slot booking rejected",
            extra={
                "consultant_id": consultant_id,
                "requested": len(ids),
                "updated": updated,
                "blocked_slot_ids": blocked,
            },
        )
        if blocked and not taken:
            raise ValidationException(
                "Cannot book a blocked availability slot", details={"slot_ids": blocked}
            )
        raise SlotAlreadyBookedException(details={"slot_ids": taken or list(ids)})

    def _after_write(
        self,
        consultant_id: str,
        operation: str,
        ids: Sequence[str],
        updated: int,
        session_id: Optional[str],
    ) -> None:
        self.invalidate_availability(consultant_id)
        self.log_operation(
            operation,
            consultant_id=consultant_id,
            slot_count=len(ids),
            updated_count=updated,
            session_id=session_id,
        )
