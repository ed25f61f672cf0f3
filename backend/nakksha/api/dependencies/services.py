# backend/nakksha/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each request gets fresh service instances sharing the request's session
and cache service.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...services.availability_query_service import AvailabilityQueryService
from ...services.booking_gate import BookingGate
from ...services.cache_service import CacheService, get_cache_service
from ...services.pattern_service import PatternService
from ...services.slot_generator import SlotGenerator
from ...services.slot_horizon_service import SlotHorizonService
from ...services.slot_manager import SlotManager


def get_pattern_service(
    db: Session = Depends(get_db),
    cache_service: CacheService = Depends(get_cache_service),
) -> PatternService:
    return PatternService(db, cache_service)


def get_slot_generator(
    db: Session = Depends(get_db),
    cache_service: CacheService = Depends(get_cache_service),
) -> SlotGenerator:
    return SlotGenerator(db, cache_service)


def get_slot_manager(
    db: Session = Depends(get_db),
    cache_service: CacheService = Depends(get_cache_service),
) -> SlotManager:
    return SlotManager(db, cache_service)


def get_booking_gate(
    db: Session = Depends(get_db),
    cache_service: CacheService = Depends(get_cache_service),
) -> BookingGate:
    return BookingGate(db, cache_service)


def get_availability_query_service(
    db: Session = Depends(get_db),
    cache_service: CacheService = Depends(get_cache_service),
) -> AvailabilityQueryService:
    return AvailabilityQueryService(db, cache_service)


def get_slot_horizon_service(
    db: Session = Depends(get_db),
    cache_service: CacheService = Depends(get_cache_service),
) -> SlotHorizonService:
    return SlotHorizonService(db, cache_service)
