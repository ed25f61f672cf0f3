# backend/nakksha/routes/v1/consultant_availability.py
"""
Consultant availability routes - API v1

Concrete slot management for the authenticated consultant, mounted at
/api/v1/consultant/availability.

Endpoints:
    GET    /            → Every slot in range with a summary
    POST   /            → Create one-off slots for chosen dates
    PUT    /            → Book or release slots
    PATCH  /block       → Block or un-block open slots
    DELETE /{slot_id}   → Delete an unbooked slot
"""

from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from ...api.dependencies.auth import get_current_consultant
from ...api.dependencies.services import get_booking_gate, get_slot_manager
from ...api.errors import handle_domain_exception
from ...core.enums import SessionType
from ...core.exceptions import DomainException
from ...models.consultant import Consultant
from ...schemas.availability_slot import (
    BlockSlotsRequest,
    ConsultantSlotsResponse,
    CreateSlotsRequest,
    CreateSlotsResponse,
    SlotDeleteResponse,
    SlotUpdateResponse,
    UpdateBookedStatusRequest,
)
from ...services.booking_gate import BookingGate
from ...services.slot_manager import SlotManager

router = APIRouter(tags=["consultant-availability-v1"])


@router.get("", response_model=ConsultantSlotsResponse)
def get_consultant_slots(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    session_type: Optional[SessionType] = Query(None, alias="sessionType"),
    current_consultant: Consultant = Depends(get_current_consultant),
    slot_manager: SlotManager = Depends(get_slot_manager),
) -> Dict[str, Any]:
    try:
        return slot_manager.get_consultant_slots(
            current_consultant.id,
            start_date=start_date,
            end_date=end_date,
            session_type=session_type.value if session_type else None,
        )
    except DomainException as exc:
        handle_domain_exception(exc)


@router.post("", response_model=CreateSlotsResponse, status_code=status.HTTP_201_CREATED)
def create_slots(
    payload: CreateSlotsRequest,
    current_consultant: Consultant = Depends(get_current_consultant),
    slot_manager: SlotManager = Depends(get_slot_manager),
) -> Dict[str, Any]:
    try:
        return slot_manager.create_slots(
            current_consultant.id,
            payload.session_type,
            payload.dates,
            payload.time_slots,
        )
    except DomainException as exc:
        handle_domain_exception(exc)


@router.put("", response_model=SlotUpdateResponse)
def update_booked_status(
    payload: UpdateBookedStatusRequest,
    current_consultant: Consultant = Depends(get_current_consultant),
    booking_gate: BookingGate = Depends(get_booking_gate),
) -> Dict[str, Any]:
    """Book or release slots. Booking an already booked slot returns 409."""
    try:
        return booking_gate.set_booked_status(
            payload.slot_ids,
            current_consultant.id,
            payload.is_booked,
            session_id=payload.session_id,
        )
    except DomainException as exc:
        handle_domain_exception(exc)


@router.patch("/block", response_model=SlotUpdateResponse)
def set_blocked_status(
    payload: BlockSlotsRequest,
    current_consultant: Consultant = Depends(get_current_consultant),
    slot_manager: SlotManager = Depends(get_slot_manager),
) -> Dict[str, Any]:
    try:
        return slot_manager.set_blocked_status(
            payload.slot_ids, current_consultant.id, payload.is_blocked
        )
    except DomainException as exc:
        handle_domain_exception(exc)


@router.delete("/{slot_id}", response_model=SlotDeleteResponse)
def delete_slot(
    slot_id: str,
    current_consultant: Consultant = Depends(get_current_consultant),
    booking_gate: BookingGate = Depends(get_booking_gate),
) -> Dict[str, Any]:
    try:
        return booking_gate.delete_slot(slot_id, current_consultant.id)
    except DomainException as exc:
        handle_domain_exception(exc)
