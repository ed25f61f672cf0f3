# backend/nakksha/services/availability_query_service.py
"""
Public availability query.

Serves the client-facing "which times can I book" listing: open slots only
(not booked, not blocked), never in the past, paginated and grouped by date.
Results are cached briefly; a cache miss or an unavailable cache only costs a
database read.
"""

from datetime import date, timedelta
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import NotFoundException
from ..core.timezone_utils import get_consultant_today
from ..repositories.factory import RepositoryFactory
from ..schemas.availability_slot import PublicSlot
from .base import BaseService
from .cache_service import CacheService
from .slot_manager import group_by_date

logger = logging.getLogger(__name__)


class AvailabilityQueryService(BaseService):
    def __init__(self, db: Session, cache: Optional[CacheService] = None):
        super().__init__(db, cache)
        self.slot_repository = RepositoryFactory.create_slot_repository(db)
        self.consultant_repository = RepositoryFactory.create_consultant_repository(db)

    @staticmethod
    def clamp_limit(limit: Optional[int]) -> int:
        if limit is None:
            return settings.public_slots_default_limit
        return max(1, min(limit, settings.public_slots_max_limit))

    @BaseService.measure_operation("get_available_slots")
    def get_available_slots(
        self,
        consultant_slug_or_id: str,
        session_type: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """
        Open slots of a consultant for clients.

        Args:
            consultant_slug_or_id: Public slug, or the consultant id
            session_type: Restrict to one session type
            start_date: Earliest date; dates before today are raised to today
            end_date: Latest date; defaults to the effective start plus the default window
            limit: Page size, capped at the configured maximum
            offset: Rows to skip

        Returns:
            Slots, slots grouped by date, totals and pagination

        Raises:
            NotFoundException: If the consultant does not exist
        """
        page_size = self.clamp_limit(limit)
        page_offset = max(0, offset or 0)

        cache_key = None
        if self.cache:
            cache_key = self.cache.public_slots_key(
                consultant_slug_or_id, session_type, start_date, end_date, page_size, page_offset
            )
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        consultant = self.consultant_repository.get_by_slug_or_id(consultant_slug_or_id)
        if consultant is None:
            raise NotFoundException(
                "Consultant not found", details={"consultant": consultant_slug_or_id}
            )

        today = get_consultant_today(consultant)
        effective_start = max(start_date, today) if start_date else today
        effective_end = end_date or effective_start + timedelta(
            days=settings.public_slots_default_days
        )

        if effective_end < effective_start:
            slots, total_available = [], 0
        else:
            slots = self.slot_repository.get_available_page(
                consultant.id, effective_start, effective_end, session_type, page_size, page_offset
            )
            total_available = self.slot_repository.count_available(
                consultant.id, effective_start, effective_end, session_type
            )

        serialized = [PublicSlot.model_validate(slot).model_dump(mode="json") for slot in slots]
        result = {
            "consultant": {
                "id": consultant.id,
                "slug": consultant.slug,
                "name": consultant.full_name,
            },
            "slots": serialized,
            "slots_by_date": group_by_date(serialized),
            "total_slots": len(serialized),
            "total_available": total_available,
            "pagination": {
                "limit": page_size,
                "offset": page_offset,
                "has_more": page_offset + len(serialized) < total_available,
            },
        }

        if cache_key:
            self.cache.set(cache_key, result, ttl=settings.public_slots_cache_ttl)
        return result
