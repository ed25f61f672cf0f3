"""
Timezone utilities for the Nakksha platform.

"Today" is always evaluated in the consultant's timezone so that a slot
dated today is still bookable until local midnight.
"""

from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

import pytz

from .config import settings

if TYPE_CHECKING:
    from ..models.consultant import Consultant


def is_valid_timezone(name: str) -> bool:
    return name in pytz.all_timezones_set


def get_timezone(name: Optional[str] = None) -> pytz.BaseTzInfo:
    """
    Resolve an IANA timezone name.

    Falls back to the configured default when the name is empty or unknown.
    """
    if name and is_valid_timezone(name):
        return pytz.timezone(name)
    return pytz.timezone(settings.default_timezone)


def get_today(timezone_name: Optional[str] = None) -> date:
    """Get 'today' in the given timezone."""
    return datetime.now(get_timezone(timezone_name)).date()


def get_consultant_today(consultant: Optional["Consultant"]) -> date:
    """
    Get 'today' in the consultant's timezone.

    Args:
        consultant: Consultant row, or None to use the platform default

    Returns:
        Today's date in the consultant's timezone
    """
    return get_today(consultant.timezone if consultant is not None else None)


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)
