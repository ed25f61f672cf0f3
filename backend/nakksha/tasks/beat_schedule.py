# backend/nakksha/tasks/beat_schedule.py
"""
Celery Beat schedule configuration for Nakksha.

The rolling slot generation job runs hourly so every consultant with active
patterns keeps a populated booking horizon.
"""

import logging
import os
from typing import Any

from celery.schedules import crontab

logger = logging.getLogger(__name__)

DEFAULT_ROLLING_GENERATION_CRON = "5 * * * *"

# Main beat schedule configuration
CELERYBEAT_SCHEDULE: dict[str, dict[str, Any]] = {
    "generate-rolling-availability-slots": {
        "task": "availability.generate_rolling_slots",
        "schedule": crontab(minute=5),  # Hourly, five minutes past
        "kwargs": {},
        "options": {
            "queue": "celery",
            "priority": 5,
        },
    },
}


def _parse_cron_expression(cron_expr: str, fallback: str) -> Any:
    """Convert a five-field cron expression into a Celery crontab schedule."""
    parts = cron_expr.strip().split()
    if len(parts) != 5:
        logger.warning("Invalid cron expression '%s'; falling back to %s", cron_expr, fallback)
        parts = fallback.split()
    minute, hour, day_of_month, month_of_year, day_of_week = parts
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
    )


def get_beat_schedule(environment: str = "production") -> dict[str, dict[str, Any]]:
    """
    Get the beat schedule for the specified environment.

    ``ROLLING_SLOT_GENERATION_CRON`` overrides the generation cadence.

    Args:
        environment: The environment name (production, development, test)

    Returns:
        Mapping of task name to Celery beat configuration dict
    """
    base: dict[str, dict[str, Any]] = {name: dict(entry) for name, entry in CELERYBEAT_SCHEDULE.items()}
    cron = os.getenv("ROLLING_SLOT_GENERATION_CRON")
    if cron:
        base["generate-rolling-availability-slots"]["schedule"] = _parse_cron_expression(
            cron, DEFAULT_ROLLING_GENERATION_CRON
        )
    if environment != "production":
        base["generate-rolling-availability-slots"]["options"] = {"queue": "celery", "priority": 3}
    return base
