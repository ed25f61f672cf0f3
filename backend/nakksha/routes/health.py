# backend/nakksha/routes/health.py
"""
Health check endpoint.

Reports process liveness together with database and cache reachability.
"""

from datetime import datetime, timezone
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..core.constants import BRAND_NAME
from ..database import get_db
from ..services.cache_service import CacheService, get_cache_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(
    db: Session = Depends(get_db),
    cache_service: CacheService = Depends(get_cache_service),
) -> Dict[str, Any]:
    try:
        db.execute(text("SELECT 1"))
        db_status = True
        status = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = False
        status = "degraded"

    return {
        "status": status,
        "service": f"{BRAND_NAME} API",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {"database": db_status, "cache": cache_service.get_stats()["backend"]},
    }
