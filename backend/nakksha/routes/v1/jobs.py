# backend/nakksha/routes/v1/jobs.py
"""
Background job status routes - API v1

    GET  /jobs               → Status of every known job
    GET  /jobs/stats         → Aggregate counts
    POST /jobs/{name}/run    → Run a job now
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...api.dependencies.services import get_slot_horizon_service
from ...api.errors import handle_domain_exception
from ...core.exceptions import DomainException
from ...schemas.job_status import JobStatsResponse, JobStatusListResponse, JobStatusResponse
from ...services.slot_horizon_service import SlotHorizonService

router = APIRouter(tags=["jobs-v1"])


@router.get("", response_model=JobStatusListResponse)
def list_jobs(
    horizon_service: SlotHorizonService = Depends(get_slot_horizon_service),
) -> JobStatusListResponse:
    statuses = horizon_service.get_job_statuses()
    return JobStatusListResponse(
        jobs=[JobStatusResponse.model_validate(status) for status in statuses]
    )


@router.get("/stats", response_model=JobStatsResponse)
def get_job_stats(
    horizon_service: SlotHorizonService = Depends(get_slot_horizon_service),
) -> Dict[str, int]:
    return horizon_service.get_job_stats()


@router.post("/{name}/run")
def run_job(
    name: str,
    horizon_service: SlotHorizonService = Depends(get_slot_horizon_service),
) -> Dict[str, Any]:
    try:
        return {"job": name, "result": horizon_service.run_job(name)}
    except DomainException as exc:
        handle_domain_exception(exc)
