# backend/nakksha/services/pattern_service.py
"""
Weekly Pattern Service for Nakksha

Owns a consultant's recurring weekly availability:

- create, list, update, delete and bulk-replace patterns
- reject overlapping intervals on the same session type and weekday
- keep generated slots consistent: every mutation reconciles slot keys in
  the same transaction, blocking orphaned future slots and restoring slots
  whose key becomes active again
- move the end of future slots when their pattern now ends elsewhere

All operations are scoped to the requesting consultant. Mutations lock the
consultant row before their overlap check, so two writers for the same
consultant run one after the other.
"""

from datetime import timedelta
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    NotFoundException,
    PatternUpdateInProgressException,
    ServiceException,
    ValidationException,
)
from ..core.pattern_lock import pattern_lock
from ..core.slot_times import intervals_overlap
from ..core.timezone_utils import get_consultant_today
from ..models.weekly_pattern import WeeklyAvailabilityPattern
from ..repositories.factory import RepositoryFactory
from ..schemas.weekly_pattern import (
    WeeklyPatternCreate,
    WeeklyPatternResponse,
    WeeklyPatternUpdate,
)
from .base import BaseService
from .cache_service import CacheService
from .slot_generator import SlotGenerator
from .slot_reconciler import SlotReconciler, pattern_keys, pattern_slot_ends, snapshot

logger = logging.getLogger(__name__)

OVERLAP_MESSAGE = "Time slot overlaps with existing pattern"
TIME_ORDER_MESSAGE = "End time must be after start time"


def _serialize(pattern: WeeklyAvailabilityPattern) -> Dict[str, Any]:
    return WeeklyPatternResponse.model_validate(pattern).model_dump(mode="json")


class PatternService(BaseService):
    """Pattern store with slot reconciliation."""

    def __init__(
        self,
        db: Session,
        cache: Optional[CacheService] = None,
        generator: Optional[SlotGenerator] = None,
        reconciler: Optional[SlotReconciler] = None,
    ):
        super().__init__(db, cache)
        self.pattern_repository = RepositoryFactory.create_pattern_repository(db)
        self.consultant_repository = RepositoryFactory.create_consultant_repository(db)
        self.generator = generator or SlotGenerator(db, cache)
        self.reconciler = reconciler or SlotReconciler(db)

    # Queries

    @BaseService.measure_operation("list_patterns")
    def list_patterns(self, consultant_id: str) -> Dict[str, Any]:
        """
        All patterns of a consultant with totals.

        Returns:
            {"patterns": [...], "total_patterns": n, "active_patterns": m}
        """
        cache_key = self.cache.patterns_key(consultant_id) if self.cache else None
        if cache_key:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        patterns = self.pattern_repository.list_for_consultant(consultant_id)
        result = {
            "patterns": [_serialize(p) for p in patterns],
            "total_patterns": len(patterns),
            "active_patterns": sum(1 for p in patterns if p.is_active),
        }

        if cache_key:
            self.cache.set(cache_key, result, ttl=settings.patterns_cache_ttl)
        return result

    # Mutations

    @BaseService.measure_operation("create_pattern")
    def create_pattern(
        self, consultant_id: str, data: WeeklyPatternCreate
    ) -> WeeklyAvailabilityPattern:
        """
        Create one pattern after validating time order and overlap.

        Raises:
            ValidationException: If end <= start or the interval overlaps
        """
        self._ensure_time_order(data.start_time, data.end_time)

        with self.transaction():
            self.consultant_repository.lock_for_update(consultant_id)
            self._ensure_no_overlap(
                consultant_id, data.session_type, data.day_of_week, data.start_time, data.end_time
            )
            pattern = self.pattern_repository.create(
                consultant_id=consultant_id,
                session_type=data.session_type,
                day_of_week=data.day_of_week,
                start_time=data.start_time,
                end_time=data.end_time,
                is_active=data.is_active,
                timezone=data.timezone,
            )
            _, restored, _ = self._reconcile(consultant_id, [], [snapshot(pattern)])

        self.invalidate_availability(consultant_id)
        self.log_operation(
            "create_pattern",
            consultant_id=consultant_id,
            pattern_id=pattern.id,
            session_type=pattern.session_type,
            day_of_week=pattern.day_of_week,
            slots_restored=restored,
        )
        return pattern

    @BaseService.measure_operation("update_pattern")
    def update_pattern(
        self, pattern_id: str, consultant_id: str, data: WeeklyPatternUpdate
    ) -> WeeklyAvailabilityPattern:
        """
        Update a pattern; slots of the old shape that the new one no longer
        produces are blocked.

        Raises:
            NotFoundException: If the pattern does not belong to the consultant
            ValidationException: If the merged times are invalid or overlap
        """
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        with self.transaction():
            self.consultant_repository.lock_for_update(consultant_id)
            pattern = self._get_owned(pattern_id, consultant_id)
            before = snapshot(pattern)

            merged = before._replace(**{k: v for k, v in changes.items() if k in before._fields})
            self._ensure_time_order(merged.start_time, merged.end_time)
            self._ensure_no_overlap(
                consultant_id,
                merged.session_type,
                merged.day_of_week,
                merged.start_time,
                merged.end_time,
                exclude_id=pattern.id,
            )

            self.pattern_repository.update(pattern.id, **changes)
            blocked, restored, retimed = self._reconcile(
                consultant_id, [before], [snapshot(pattern)]
            )

        self.invalidate_availability(consultant_id)
        self.log_operation(
            "update_pattern",
            consultant_id=consultant_id,
            pattern_id=pattern_id,
            fields=sorted(changes),
            slots_blocked=blocked,
            slots_restored=restored,
            slots_retimed=retimed,
        )
        return pattern

    @BaseService.measure_operation("delete_pattern")
    def delete_pattern(self, pattern_id: str, consultant_id: str) -> Dict[str, Any]:
        """
        Delete a pattern and block its unbooked future slots.

        Raises:
            NotFoundException: If the pattern does not belong to the consultant
        """
        with self.transaction():
            self.consultant_repository.lock_for_update(consultant_id)
            pattern = self._get_owned(pattern_id, consultant_id)
            before = snapshot(pattern)
            self.pattern_repository.delete(pattern.id)
            blocked, _, _ = self._reconcile(consultant_id, [before], [])

        self.invalidate_availability(consultant_id)
        self.log_operation(
            "delete_pattern",
            consultant_id=consultant_id,
            pattern_id=pattern_id,
            slots_blocked=blocked,
        )
        return {"deleted": True, "pattern_id": pattern_id, "slots_blocked": blocked}

    @BaseService.measure_operation("bulk_replace_patterns")
    def bulk_replace(
        self,
        consultant_id: str,
        patterns: Sequence[WeeklyPatternCreate],
        generate_days: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Replace every pattern of a consultant with a new set.

        Old patterns are deleted and the new set inserted in one transaction,
        together with reconciliation. Afterwards slots are generated for the
        next ``generate_days`` days.

        Raises:
            ValidationException: If any entry is invalid or entries overlap
            PatternUpdateInProgressException: If another replace holds the lock
        """
        self._validate_replacement_set(patterns)
        days = settings.bulk_replace_generation_days if generate_days is None else generate_days

        with pattern_lock(consultant_id) as acquired:
            if not acquired:
                raise PatternUpdateInProgressException(consultant_id)

            with self.transaction():
                self.consultant_repository.lock_for_update(consultant_id)
                old = [snapshot(p) for p in self.pattern_repository.list_for_consultant(consultant_id)]
                self.pattern_repository.delete_for_consultant(consultant_id)
                created = self.pattern_repository.bulk_create(
                    [
                        {
                            "consultant_id": consultant_id,
                            "session_type": p.session_type,
                            "day_of_week": p.day_of_week,
                            "start_time": p.start_time,
                            "end_time": p.end_time,
                            "is_active": p.is_active,
                            "timezone": p.timezone,
                        }
                        for p in patterns
                    ]
                )
                blocked, restored, _ = self._reconcile(
                    consultant_id, old, [snapshot(p) for p in created]
                )

        self.invalidate_availability(consultant_id)

        slots_created = 0
        generation_error = None
        if days > 0 and any(p.is_active for p in created):
            today = get_consultant_today(self.consultant_repository.get_by_id(consultant_id))
            try:
                generation = self.generator.generate_slots(
                    consultant_id,
                    today,
                    today + timedelta(days=days),
                    trigger="bulk_replace",
                )
                slots_created = generation["slots_created"]
            except ServiceException as e:
                # Patterns are committed; the scheduled job fills the horizon later.
                generation_error = e.message
                self.logger.error(
                    "Slot generation after bulk replace failed",
                    extra={"consultant_id": consultant_id, "error": e.message},
                )

        self.log_operation(
            "bulk_replace_patterns",
            consultant_id=consultant_id,
            total_created=len(created),
            slots_blocked=blocked,
            slots_restored=restored,
            slots_created=slots_created,
        )
        return {
            "patterns": [_serialize(p) for p in created],
            "total_created": len(created),
            "slots_blocked": blocked,
            "slots_restored": restored,
            "slots_created": slots_created,
            "generation_error": generation_error,
        }

    # Helpers

    def _get_owned(self, pattern_id: str, consultant_id: str) -> WeeklyAvailabilityPattern:
        pattern = self.pattern_repository.get_for_consultant(pattern_id, consultant_id)
        if not pattern:
            raise NotFoundException(
                "Availability pattern not found", details={"pattern_id": pattern_id}
            )
        return pattern

    @staticmethod
    def _ensure_time_order(start_time: str, end_time: str) -> None:
        if end_time <= start_time:
            raise ValidationException(
                TIME_ORDER_MESSAGE, details={"start_time": start_time, "end_time": end_time}
            )

    def _ensure_no_overlap(
        self,
        consultant_id: str,
        session_type: str,
        day_of_week: int,
        start_time: str,
        end_time: str,
        exclude_id: Optional[str] = None,
    ) -> None:
        overlapping = self.pattern_repository.find_overlapping(
            consultant_id, session_type, day_of_week, start_time, end_time, exclude_id=exclude_id
        )
        if overlapping:
            conflict = overlapping[0]
            raise ValidationException(
                OVERLAP_MESSAGE,
                details={
                    "conflicting_pattern_id": conflict.id,
                    "start_time": conflict.start_time,
                    "end_time": conflict.end_time,
                },
            )

    def _validate_replacement_set(self, patterns: Sequence[WeeklyPatternCreate]) -> None:
        for index, candidate in enumerate(patterns):
            self._ensure_time_order(candidate.start_time, candidate.end_time)
            for other in patterns[:index]:
                if (
                    other.session_type == candidate.session_type
                    and other.day_of_week == candidate.day_of_week
                    and intervals_overlap(
                        other.start_time, other.end_time, candidate.start_time, candidate.end_time
                    )
                ):
                    raise ValidationException(
                        OVERLAP_MESSAGE,
                        details={
                            "index": index,
                            "day_of_week": candidate.day_of_week,
                            "start_time": candidate.start_time,
                            "end_time": candidate.end_time,
                        },
                    )

    def _reconcile(
        self, consultant_id: str, before: List, after: List
    ) -> tuple[int, int, int]:
        """
        Block keys that ``before`` produced and no remaining pattern produces;
        restore keys ``after`` introduced; realign end times of keys whose end
        moved or that came back.

        Returns:
            (slots_blocked, slots_restored, slots_retimed)
        """
        old_ends = pattern_slot_ends(before)
        new_ends = pattern_slot_ends(after)
        current_keys = pattern_keys(
            self.pattern_repository.list_for_consultant(consultant_id, active_only=True)
        )
        blocked = self.reconciler.block_orphaned_slots(
            consultant_id, set(old_ends) - current_keys
        )
        restored = self.reconciler.restore_slots(consultant_id, set(new_ends) - set(old_ends))
        retimed = self.reconciler.realign_end_times(
            consultant_id,
            {key: end for key, end in new_ends.items() if old_ends.get(key) != end},
        )
        return blocked, restored, retimed
