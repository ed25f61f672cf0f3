# backend/nakksha/services/slot_manager.py
"""
Slot Manager for Nakksha

Consultant-facing slot operations that sit next to pattern generation:
listing every slot with a summary, adding one-off slots for chosen dates,
and manually blocking or un-blocking open slots.
"""

from datetime import date, timedelta
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import BlockReason
from ..core.exceptions import ValidationException
from ..core.slot_times import day_of_week
from ..core.timezone_utils import get_consultant_today
from ..core.ulid_helper import generate_ulid
from ..models.availability import AvailabilitySlot, slot_key
from ..repositories.factory import RepositoryFactory
from ..schemas.availability_slot import ConsultantSlot, TimeSlotInput
from .base import BaseService
from .cache_service import CacheService

logger = logging.getLogger(__name__)

OWNERSHIP_MESSAGE = "Some availability slots not found or do not belong to you"


def group_by_date(slots: Sequence[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Group serialized slots by their ISO date, preserving order."""
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for slot in slots:
        grouped.setdefault(slot["date"], []).append(slot)
    return grouped


def serialize_consultant_slot(slot: AvailabilitySlot) -> Dict[str, Any]:
    return ConsultantSlot.model_validate(slot).model_dump(mode="json")


class SlotManager(BaseService):
    """Consultant slot listing, manual creation and manual blocking."""

    def __init__(self, db: Session, cache: Optional[CacheService] = None):
        super().__init__(db, cache)
        self.slot_repository = RepositoryFactory.create_slot_repository(db)
        self.consultant_repository = RepositoryFactory.create_consultant_repository(db)

    @BaseService.measure_operation("get_consultant_slots")
    def get_consultant_slots(
        self,
        consultant_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        session_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Every slot of the consultant in range, booked and blocked included.

        Defaults to today through the configured window.
        """
        today = get_consultant_today(self.consultant_repository.get_by_id(consultant_id))
        start = start_date or today
        end = end_date or start + timedelta(days=settings.consultant_slots_default_days)

        slots = self.slot_repository.find_slots(
            consultant_id, start_date=start, end_date=end, session_type=session_type
        )
        serialized = [serialize_consultant_slot(slot) for slot in slots]
        booked = sum(1 for slot in slots if slot.is_booked)
        blocked = sum(1 for slot in slots if slot.is_blocked and not slot.is_booked)

        return {
            "slots": serialized,
            "slots_by_date": group_by_date(serialized),
            "summary": {
                "total_slots": len(slots),
                "booked_slots": booked,
                "available_slots": len(slots) - booked - blocked,
                "blocked_slots": blocked,
            },
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
        }

    @BaseService.measure_operation("create_manual_slots")
    def create_slots(
        self,
        consultant_id: str,
        session_type: str,
        dates: Sequence[date],
        time_slots: Sequence[TimeSlotInput],
    ) -> Dict[str, Any]:
        """
        Create one-off slots for every date x time combination.

        Past dates and combinations that already exist are skipped.

        Raises:
            ValidationException: If nothing new would be created
        """
        today = get_consultant_today(self.consultant_repository.get_by_id(consultant_id))
        future_dates = sorted({d for d in dates if d >= today})

        rows: List[Dict[str, Any]] = []
        if future_dates:
            existing = self.slot_repository.get_existing_keys(
                consultant_id, future_dates[0], future_dates[-1], session_type
            )
            for slot_date in future_dates:
                for time_slot in time_slots:
                    key = slot_key(slot_date.isoformat(), time_slot.start_time, session_type)
                    if key in existing:
                        continue
                    existing.add(key)
                    rows.append(
                        {
                            "id": generate_ulid(),
                            "consultant_id": consultant_id,
                            "session_type": session_type,
                            "date": slot_date,
                            "day_of_week": day_of_week(slot_date),
                            "start_time": time_slot.start_time,
                            "end_time": time_slot.end_time,
                            "is_booked": False,
                            "is_blocked": False,
                        }
                    )

        if not rows:
            raise ValidationException(
                "No new availability slots to create. All specified slots already exist."
            )

        with self.transaction():
            created = self.slot_repository.insert_slots_ignoring_conflicts(rows)

        self.invalidate_availability(consultant_id)
        self.log_operation(
            "create_manual_slots",
            consultant_id=consultant_id,
            session_type=session_type,
            slots_created=created,
        )

        created_slots = self.slot_repository.get_owned([row["id"] for row in rows], consultant_id)
        created_slots.sort(key=lambda s: (s.date, s.start_time))
        return {
            "slots_created": created,
            "slots": [serialize_consultant_slot(slot) for slot in created_slots],
        }

    @BaseService.measure_operation("set_blocked_status")
    def set_blocked_status(
        self, slot_ids: Sequence[str], consultant_id: str, is_blocked: bool
    ) -> Dict[str, Any]:
        """
        Manually block or un-block open slots.

        Raises:
            ValidationException: If a slot is foreign, missing or booked
        """
        ids = list(dict.fromkeys(slot_ids))

        with self.transaction():
            slots = self.slot_repository.get_owned(ids, consultant_id)
            if len(slots) != len(ids):
                raise ValidationException(OWNERSHIP_MESSAGE)
            booked = [slot.id for slot in slots if slot.is_booked]
            if booked:
                raise ValidationException(
                    "Cannot change the blocked state of a booked availability slot",
                    details={"slot_ids": booked},
                )
            updated = self.slot_repository.update_slots(
                ids,
                consultant_id,
                is_blocked=is_blocked,
                blocked_reason=BlockReason.MANUAL.value if is_blocked else None,
            )

        self.invalidate_availability(consultant_id)
        self.log_operation(
            "set_blocked_status",
            consultant_id=consultant_id,
            is_blocked=is_blocked,
            updated_count=updated,
        )
        return {"updated_count": updated, "slot_ids": ids}
