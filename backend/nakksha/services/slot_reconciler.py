# backend/nakksha/services/slot_reconciler.py
"""
Pattern-change reconciliation.

When a weekly pattern disappears (delete, edit, deactivation, bulk replace)
the future slots it produced must stop being offered, and booked slots must
survive untouched. Slots are linked to patterns only by
(session_type, day_of_week, start_time), so reconciliation works on those
keys rather than on pattern ids. A key that survives a change with a
different end time has the end of its future unbooked slots rewritten.

The reconciler never commits; it runs inside the pattern mutation's
transaction.
"""

from datetime import date
import logging
from typing import Dict, Iterable, NamedTuple, Optional, Set

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.slot_times import expand_time_range
from ..core.timezone_utils import get_consultant_today
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class PatternKey(NamedTuple):
    session_type: str
    day_of_week: int
    start_time: str


class PatternShape(NamedTuple):
    """Detached copy of the pattern fields that determine generated slots."""

    session_type: str
    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool = True


def snapshot(pattern) -> PatternShape:
    return PatternShape(
        session_type=pattern.session_type,
        day_of_week=pattern.day_of_week,
        start_time=pattern.start_time,
        end_time=pattern.end_time,
        is_active=bool(pattern.is_active),
    )


def pattern_slot_ends(
    patterns: Iterable, duration_minutes: Optional[int] = None
) -> Dict[PatternKey, str]:
    """End time each active pattern gives the slots of every key it produces."""
    if duration_minutes is None:
        duration_minutes = settings.slot_duration_minutes
    ends: Dict[PatternKey, str] = {}
    for pattern in patterns:
        if not pattern.is_active:
            continue
        for start_time, end_time in expand_time_range(
            pattern.start_time, pattern.end_time, duration_minutes
        ):
            ends[PatternKey(pattern.session_type, pattern.day_of_week, start_time)] = end_time
    return ends


def pattern_keys(patterns: Iterable, duration_minutes: Optional[int] = None) -> Set[PatternKey]:
    """Slot keys produced by the active patterns, using the generator's expansion."""
    return set(pattern_slot_ends(patterns, duration_minutes))


class SlotReconciler(BaseService):
    """Blocks orphaned future slots and restores slots whose key came back."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.slot_repository = RepositoryFactory.create_slot_repository(db)
        self.consultant_repository = RepositoryFactory.create_consultant_repository(db)

    def _today(self, consultant_id: str) -> date:
        return get_consultant_today(self.consultant_repository.get_by_id(consultant_id))

    @BaseService.measure_operation("block_orphaned_slots")
    def block_orphaned_slots(
        self,
        consultant_id: str,
        removed_keys: Iterable[PatternKey],
        today: Optional[date] = None,
    ) -> int:
        """
        Block unbooked slots dated today or later for each removed key.

        Returns:
            Number of slots blocked
        """
        keys = sorted(set(removed_keys))
        if not keys:
            return 0

        from_date = today or self._today(consultant_id)
        blocked = 0
        for key in keys:
            blocked += self.slot_repository.set_blocked_for_key(
                consultant_id,
                key.session_type,
                key.day_of_week,
                key.start_time,
                from_date,
                blocked=True,
            )

        prometheus_metrics.inc_slots_reconciled("blocked", blocked)
        self.log_operation(
            "block_orphaned_slots",
            consultant_id=consultant_id,
            keys=len(keys),
            slots_blocked=blocked,
        )
        return blocked

    @BaseService.measure_operation("restore_slots")
    def restore_slots(
        self,
        consultant_id: str,
        added_keys: Iterable[PatternKey],
        today: Optional[date] = None,
    ) -> int:
        """Un-block future unbooked slots whose key is produced by a pattern again."""
        keys = sorted(set(added_keys))
        if not keys:
            return 0

        from_date = today or self._today(consultant_id)
        restored = 0
        for key in keys:
            restored += self.slot_repository.set_blocked_for_key(
                consultant_id,
                key.session_type,
                key.day_of_week,
                key.start_time,
                from_date,
                blocked=False,
            )

        prometheus_metrics.inc_slots_reconciled("restored", restored)
        if restored:
            self.log_operation(
                "restore_slots", consultant_id=consultant_id, slots_restored=restored
            )
        return restored

    @BaseService.measure_operation("realign_end_times")
    def realign_end_times(
        self,
        consultant_id: str,
        key_ends: Dict[PatternKey, str],
        today: Optional[date] = None,
    ) -> int:
        """Give future unbooked slots of each key the end time its pattern now produces."""
        if not key_ends:
            return 0

        from_date = today or self._today(consultant_id)
        retimed = 0
        for key in sorted(key_ends):
            retimed += self.slot_repository.set_end_time_for_key(
                consultant_id,
                key.session_type,
                key.day_of_week,
                key.start_time,
                from_date,
                key_ends[key],
            )

        prometheus_metrics.inc_slots_reconciled("retimed", retimed)
        if retimed:
            self.log_operation(
                "realign_end_times", consultant_id=consultant_id, slots_retimed=retimed
            )
        return retimed
