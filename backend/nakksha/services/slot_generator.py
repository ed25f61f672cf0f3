# backend/nakksha/services/slot_generator.py
"""
Slot Generator for Nakksha

Expands a consultant's active weekly patterns into concrete availability
slots over a date range.

Generation is idempotent: every slot that already exists for a
(date, start time, session type), whether open, booked or blocked, is
skipped, and the unique constraint turns a concurrent duplicate insert into
a no-op. Rows are inserted in fixed-size batches, one transaction per batch;
a failure part-way leaves earlier batches committed, and re-running the same
range completes the work.
"""

from datetime import date, timedelta
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import RepositoryException, ServiceException, ValidationException
from ..core.slot_times import day_of_week, expand_time_range
from ..core.ulid_helper import generate_ulid
from ..models.availability import slot_key
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .cache_service import CacheService

logger = logging.getLogger(__name__)

GENERATION_FAILED_MESSAGE = "Failed to generate availability slots"


def validate_generation_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise ValidationException("End date must be on or after start date")
    if (end_date - start_date).days > settings.slot_generation_max_days:
        raise ValidationException(
            f"Date range cannot exceed {settings.slot_generation_max_days} days",
            details={"max_days": settings.slot_generation_max_days},
        )


def iter_dates(start_date: date, end_date: date) -> List[date]:
    """Every calendar date in [start_date, end_date]."""
    return [start_date + timedelta(days=offset) for offset in range((end_date - start_date).days + 1)]


class SlotGenerator(BaseService):
    """Turns weekly patterns into dated slots without creating duplicates."""

    def __init__(
        self,
        db: Session,
        cache: Optional[CacheService] = None,
        batch_size: Optional[int] = None,
        slot_duration_minutes: Optional[int] = None,
    ):
        super().__init__(db, cache)
        self.pattern_repository = RepositoryFactory.create_pattern_repository(db)
        self.slot_repository = RepositoryFactory.create_slot_repository(db)
        self.batch_size = batch_size or settings.slot_batch_size
        self.slot_duration_minutes = (
            slot_duration_minutes
            if slot_duration_minutes is not None
            else settings.slot_duration_minutes
        )

    @BaseService.measure_operation("generate_slots")
    def generate_slots(
        self,
        consultant_id: str,
        start_date: date,
        end_date: date,
        session_type: Optional[str] = None,
        trigger: str = "manual",
    ) -> Dict[str, Any]:
        """
        Generate slots for every active pattern over [start_date, end_date].

        Args:
            consultant_id: Consultant whose patterns are expanded
            start_date: First date (inclusive)
            end_date: Last date (inclusive)
            session_type: Restrict to one session type
            trigger: Label for metrics (manual, bulk_replace, scheduled)

        Returns:
            Summary with slots_created, patterns_found, days_processed,
            existing_slots_skipped and the date range

        Raises:
            ValidationException: If the range is inverted or longer than allowed
            ServiceException: If storage fails
        """
        validate_generation_range(start_date, end_date)
        date_range = {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()}

        try:
            patterns = self.pattern_repository.list_for_consultant(
                consultant_id, session_type=session_type, active_only=True
            )
            if not patterns:
                return {
                    "slots_created": 0,
                    "patterns_found": 0,
                    "days_processed": 0,
                    "existing_slots_skipped": 0,
                    "date_range": date_range,
                }

            existing_keys = self.slot_repository.get_existing_keys(
                consultant_id, start_date, end_date, session_type
            )
        except RepositoryException as e:
            self.logger.error(
                GENERATION_FAILED_MESSAGE,
                extra={"consultant_id": consultant_id, "error": str(e)},
            )
            raise ServiceException(GENERATION_FAILED_MESSAGE) from e

        patterns_by_day: Dict[int, List[Any]] = {}
        for pattern in patterns:
            patterns_by_day.setdefault(pattern.day_of_week, []).append(pattern)

        dates = iter_dates(start_date, end_date)
        rows: List[Dict[str, Any]] = []
        skipped = 0
        for current in dates:
            weekday = day_of_week(current)
            for pattern in patterns_by_day.get(weekday, []):
                for slot_start, slot_end in expand_time_range(
                    pattern.start_time, pattern.end_time, self.slot_duration_minutes
                ):
                    key = slot_key(current.isoformat(), slot_start, pattern.session_type)
                    if key in existing_keys:
                        skipped += 1
                        continue
                    existing_keys.add(key)
                    rows.append(
                        {
                            "id": generate_ulid(),
                            "consultant_id": consultant_id,
                            "session_type": pattern.session_type,
                            "date": current,
                            "day_of_week": weekday,
                            "start_time": slot_start,
                            "end_time": slot_end,
                            "is_booked": False,
                            "is_blocked": False,
                        }
                    )

        created = self._insert_in_batches(consultant_id, rows)

        if created:
            prometheus_metrics.inc_slots_generated(created, trigger=trigger)
            self.invalidate_availability(consultant_id)

        self.log_operation(
            "generate_slots",
            consultant_id=consultant_id,
            slots_created=created,
            patterns_found=len(patterns),
            days_processed=len(dates),
            existing_slots_skipped=skipped,
            trigger=trigger,
        )
        return {
            "slots_created": created,
            "patterns_found": len(patterns),
            "days_processed": len(dates),
            "existing_slots_skipped": skipped,
            "date_range": date_range,
        }

    def _insert_in_batches(self, consultant_id: str, rows: List[Dict[str, Any]]) -> int:
        created = 0
        for offset in range(0, len(rows), self.batch_size):
            batch = rows[offset : offset + self.batch_size]
            try:
                with self.transaction():
                    created += self.slot_repository.insert_slots_ignoring_conflicts(batch)
            except ServiceException as e:
                self.logger.error(
                    GENERATION_FAILED_MESSAGE,
                    extra={
                        "consultant_id": consultant_id,
                        "batch_offset": offset,
                        "slots_committed": created,
                    },
                )
                raise ServiceException(
                    GENERATION_FAILED_MESSAGE, details={"slots_created": created}
                ) from e
        return created
