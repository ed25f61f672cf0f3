# backend/nakksha/schemas/availability_slot.py
"""
Availability slot schemas.

Public responses expose only what a client needs to pick a time; booking
state and session ids are limited to the consultant views.
"""

from datetime import date as date_type
from typing import Dict, List, Optional

from pydantic import ConfigDict, Field, field_validator, model_validator

from ..core.enums import SessionType
from ..core.slot_times import normalize_time
from .base import StandardizedModel, StrictModel


class PublicSlot(StandardizedModel):
    id: str
    session_type: str
    date: date_type
    start_time: str
    end_time: str

    model_config = ConfigDict(from_attributes=True)


class ConsultantSlot(PublicSlot):
    day_of_week: int
    is_booked: bool
    is_blocked: bool
    blocked_reason: Optional[str] = None
    session_id: Optional[str] = None


class PaginationInfo(StandardizedModel):
    limit: int
    offset: int
    has_more: bool


class ConsultantSummary(StandardizedModel):
    id: str
    slug: str
    name: str


class PublicSlotsResponse(StandardizedModel):
    consultant: ConsultantSummary
    slots: List[PublicSlot]
    slots_by_date: Dict[str, List[PublicSlot]]
    total_slots: int = Field(..., description="Slots in this page")
    total_available: int = Field(..., description="Open slots across all pages")
    pagination: PaginationInfo


class SlotSummary(StandardizedModel):
    total_slots: int
    booked_slots: int
    available_slots: int
    blocked_slots: int


class ConsultantSlotsResponse(StandardizedModel):
    slots: List[ConsultantSlot]
    slots_by_date: Dict[str, List[ConsultantSlot]]
    summary: SlotSummary
    start_date: date_type
    end_date: date_type


class TimeSlotInput(StrictModel):
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize_time(cls, v: str) -> str:
        return normalize_time(v)

    @model_validator(mode="after")
    def _validate_time_order(self) -> "TimeSlotInput":
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class CreateSlotsRequest(StrictModel):
    session_type: SessionType
    dates: List[date_type] = Field(..., min_length=1, max_length=90)
    time_slots: List[TimeSlotInput] = Field(..., min_length=1, max_length=48)


class CreateSlotsResponse(StandardizedModel):
    slots_created: int
    slots: List[ConsultantSlot]


class UpdateBookedStatusRequest(StrictModel):
    slot_ids: List[str] = Field(..., min_length=1, max_length=100)
    is_booked: bool
    session_id: Optional[str] = None


class BlockSlotsRequest(StrictModel):
    slot_ids: List[str] = Field(..., min_length=1, max_length=100)
    is_blocked: bool


class SlotUpdateResponse(StandardizedModel):
    updated_count: int
    slot_ids: List[str]


class SlotDeleteResponse(StandardizedModel):
    deleted: bool
    slot_id: str
