# backend/nakksha/core/enums.py
"""
Core enums for the Nakksha platform.

These enums are stored by value in string columns, so adding a member never
requires a schema change.
"""

from enum import Enum


class SessionType(str, Enum):
    """Kind of session a consultant offers."""

    PERSONAL = "PERSONAL"
    WEBINAR = "WEBINAR"


class JobState(str, Enum):
    """Lifecycle state of a scheduled background job."""

    IDLE = "idle"
    RUNNING = "running"
    ERROR = "error"


class BlockReason(str, Enum):
    """Why an unbooked slot is hidden from clients."""

    MANUAL = "manual"
    PATTERN_REMOVED = "pattern_removed"
