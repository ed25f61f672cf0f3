# backend/nakksha/routes/v1/availability.py
"""
Availability routes - API v1

Weekly patterns, slot generation and the public slot listing under
/api/v1/availability. All business logic is delegated to services.

Endpoints:
    GET    /patterns                 → List the consultant's patterns
    POST   /patterns                 → Create a pattern
    POST   /patterns/bulk            → Replace every pattern
    PUT    /patterns/{pattern_id}    → Update a pattern
    DELETE /patterns/{pattern_id}    → Delete a pattern
    POST   /generate-slots           → Generate slots for a date range
    GET    /slots/{consultant_slug}  → Open slots for clients (public)
"""

from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from ...api.dependencies.auth import get_current_consultant
from ...api.dependencies.services import (
    get_availability_query_service,
    get_pattern_service,
    get_slot_generator,
)
from ...api.errors import handle_domain_exception
from ...core.config import settings
from ...core.enums import SessionType
from ...core.exceptions import DomainException
from ...models.consultant import Consultant
from ...schemas.availability_slot import PublicSlotsResponse
from ...schemas.weekly_pattern import (
    BulkPatternRequest,
    BulkPatternResponse,
    GenerateSlotsRequest,
    GenerateSlotsResponse,
    PatternListResponse,
    WeeklyPatternCreate,
    WeeklyPatternResponse,
    WeeklyPatternUpdate,
)
from ...services.availability_query_service import AvailabilityQueryService
from ...services.pattern_service import PatternService
from ...services.slot_generator import SlotGenerator

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["availability-v1"])


# =============================================================================
# Weekly patterns
# =============================================================================


@router.get("/patterns", response_model=PatternListResponse)
def list_patterns(
    current_consultant: Consultant = Depends(get_current_consultant),
    pattern_service: PatternService = Depends(get_pattern_service),
) -> Dict[str, Any]:
    try:
        return pattern_service.list_patterns(current_consultant.id)
    except DomainException as exc:
        handle_domain_exception(exc)


@router.post(
    "/patterns",
    response_model=WeeklyPatternResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_pattern(
    payload: WeeklyPatternCreate,
    current_consultant: Consultant = Depends(get_current_consultant),
    pattern_service: PatternService = Depends(get_pattern_service),
) -> WeeklyPatternResponse:
    try:
        pattern = pattern_service.create_pattern(current_consultant.id, payload)
        return WeeklyPatternResponse.model_validate(pattern)
    except DomainException as exc:
        handle_domain_exception(exc)


@router.post("/patterns/bulk", response_model=BulkPatternResponse)
def bulk_replace_patterns(
    payload: BulkPatternRequest,
    current_consultant: Consultant = Depends(get_current_consultant),
    pattern_service: PatternService = Depends(get_pattern_service),
) -> Dict[str, Any]:
    try:
        return pattern_service.bulk_replace(current_consultant.id, payload.patterns)
    except DomainException as exc:
        handle_domain_exception(exc)


@router.put("/patterns/{pattern_id}", response_model=WeeklyPatternResponse)
def update_pattern(
    pattern_id: str,
    payload: WeeklyPatternUpdate,
    current_consultant: Consultant = Depends(get_current_consultant),
    pattern_service: PatternService = Depends(get_pattern_service),
) -> WeeklyPatternResponse:
    try:
        pattern = pattern_service.update_pattern(pattern_id, current_consultant.id, payload)
        return WeeklyPatternResponse.model_validate(pattern)
    except DomainException as exc:
        handle_domain_exception(exc)


@router.delete("/patterns/{pattern_id}")
def delete_pattern(
    pattern_id: str,
    current_consultant: Consultant = Depends(get_current_consultant),
    pattern_service: PatternService = Depends(get_pattern_service),
) -> Dict[str, Any]:
    try:
        return pattern_service.delete_pattern(pattern_id, current_consultant.id)
    except DomainException as exc:
        handle_domain_exception(exc)


# =============================================================================
# Slot generation
# =============================================================================


@router.post("/generate-slots", response_model=GenerateSlotsResponse)
def generate_slots(
    payload: GenerateSlotsRequest,
    current_consultant: Consultant = Depends(get_current_consultant),
    generator: SlotGenerator = Depends(get_slot_generator),
) -> Dict[str, Any]:
    try:
        return generator.generate_slots(
            current_consultant.id,
            payload.start_date,
            payload.end_date,
            session_type=payload.session_type,
        )
    except DomainException as exc:
        handle_domain_exception(exc)


# =============================================================================
# Public listing
# =============================================================================


@router.get("/slots/{consultant_slug}", response_model=PublicSlotsResponse)
def get_available_slots(
    consultant_slug: str,
    session_type: Optional[SessionType] = Query(None, alias="sessionType"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    limit: int = Query(settings.public_slots_default_limit, ge=1),
    offset: int = Query(0, ge=0),
    query_service: AvailabilityQueryService = Depends(get_availability_query_service),
) -> Dict[str, Any]:
    """Open slots of a consultant. No authentication required."""
    try:
        return query_service.get_available_slots(
            consultant_slug,
            session_type=session_type.value if session_type else None,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            offset=offset,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
