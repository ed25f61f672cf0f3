# backend/nakksha/schemas/weekly_pattern.py
"""
Weekly availability pattern schemas.

Times arrive as "H:MM" or "HH:MM" and are normalised to zero-padded "HH:MM"
before they reach the service layer.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import ConfigDict, Field, field_validator, model_validator

from ..core.config import settings
from ..core.enums import SessionType
from ..core.slot_times import normalize_time
from ..core.timezone_utils import is_valid_timezone
from .base import StandardizedModel, StrictModel


def _validate_timezone(value: Optional[str]) -> Optional[str]:
    if value is not None and not is_valid_timezone(value):
        raise ValueError(f"Unknown timezone: {value}")
    return value


class WeeklyPatternBase(StrictModel):
    session_type: SessionType
    day_of_week: int = Field(..., ge=0, le=6, description="0=Sunday .. 6=Saturday")
    start_time: str = Field(..., examples=["09:00"])
    end_time: str = Field(..., examples=["10:00"])

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize_time(cls, v: str) -> str:
        return normalize_time(v)

    @model_validator(mode="after")
    def _validate_time_order(self) -> "WeeklyPatternBase":
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class WeeklyPatternCreate(WeeklyPatternBase):
    is_active: bool = True
    timezone: str = Field(default_factory=lambda: settings.default_timezone)

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, v: str) -> str:
        return _validate_timezone(v)


class WeeklyPatternUpdate(StrictModel):
    """Partial update; the merged start/end order is checked by the service."""

    session_type: Optional[SessionType] = None
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    is_active: Optional[bool] = None
    timezone: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize_time(cls, v: Optional[str]) -> Optional[str]:
        return normalize_time(v) if v is not None else v

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _validate_timezone(v)


class WeeklyPatternResponse(StandardizedModel):
    id: str
    consultant_id: str
    session_type: str
    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool
    timezone: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PatternListResponse(StandardizedModel):
    patterns: List[WeeklyPatternResponse]
    total_patterns: int
    active_patterns: int


class BulkPatternRequest(StrictModel):
    """Full replacement set; an empty list removes every pattern."""

    patterns: List[WeeklyPatternCreate] = Field(default_factory=list, max_length=200)


class BulkPatternResponse(StandardizedModel):
    patterns: List[WeeklyPatternResponse]
    total_created: int
    slots_blocked: int
    slots_restored: int
    slots_created: int
    generation_error: Optional[str] = None


class GenerateSlotsRequest(StrictModel):
    start_date: date
    end_date: date
    session_type: Optional[SessionType] = None


class DateRange(StandardizedModel):
    start_date: date
    end_date: date


class GenerateSlotsResponse(StandardizedModel):
    slots_created: int
    patterns_found: int
    days_processed: int
    existing_slots_skipped: int
    date_range: DateRange
