# backend/nakksha/tasks/availability_tasks.py
"""
Celery tasks for availability slot generation.

The beat schedule runs the rolling generation hourly; it keeps every
consultant with active patterns populated for the configured horizon.
"""

import logging
from typing import Any, Dict, Optional

from ..database import SessionLocal
from ..services.cache_service import CacheService, create_redis_client
from ..services.slot_horizon_service import SlotHorizonService
from .celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="availability.generate_rolling_slots",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
def generate_rolling_slots_task(self: Any, horizon_days: Optional[int] = None) -> Dict[str, Any]:
    """Generate slots for [today, today + horizon] for every active consultant."""
    db = SessionLocal()
    cache_service = CacheService(db, create_redis_client())
    service = SlotHorizonService(db, cache_service)

    try:
        result = service.run_rolling_generation(horizon_days=horizon_days)
        logger.info("Rolling slot generation completed", extra={"result": result})
        return result
    except Exception as exc:
        logger.exception(
            "Rolling slot generation failed", extra={"horizon_days": horizon_days}
        )
        raise self.retry(exc=exc)
    finally:
        db.close()
