# backend/nakksha/core/slot_times.py
"""
Helpers for "HH:MM" wall-clock strings and weekday numbering.

Patterns and slots number weekdays 0=Sunday .. 6=Saturday. Python's
``date.weekday()`` uses 0=Monday, so conversions go through ``day_of_week``.
"""

from datetime import date
import re
from typing import List, Optional, Tuple

from .constants import TIME_PATTERN

_TIME_RE = re.compile(TIME_PATTERN)


def normalize_time(value: str) -> str:
    """
    Validate an "H:MM"/"HH:MM" string and return it zero-padded.

    Raises:
        ValueError: If the value is not a valid 24-hour time
    """
    candidate = (value or "").strip()
    if not _TIME_RE.match(candidate):
        raise ValueError("Invalid time format. Use HH:MM format")
    hours, minutes = candidate.split(":")
    return f"{int(hours):02d}:{minutes}"


def time_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def intervals_overlap(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    """[start, end) overlap on zero-padded strings; touching intervals do not overlap."""
    return start_a < end_b and start_b < end_a


def day_of_week(value: date) -> int:
    """Weekday number with Sunday as 0."""
    return (value.weekday() + 1) % 7


def expand_time_range(
    start_time: str, end_time: str, duration_minutes: Optional[int] = None
) -> List[Tuple[str, str]]:
    """
    Split [start_time, end_time) into consecutive slots.

    Without a duration the whole range is a single slot. With a duration,
    only slots that end at or before ``end_time`` are produced.
    """
    if not duration_minutes:
        return [(start_time, end_time)]

    start = time_to_minutes(start_time)
    end = time_to_minutes(end_time)
    slots: List[Tuple[str, str]] = []
    current = start
    while current + duration_minutes <= end:
        slots.append((minutes_to_time(current), minutes_to_time(current + duration_minutes)))
        current += duration_minutes
    return slots
