"""Schemas for the background job status endpoints."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ConfigDict

from .base import StandardizedModel


class JobStatusResponse(StandardizedModel):
    name: str
    status: str
    last_run_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    run_count: int
    error_message: Optional[str] = None
    last_result: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class JobStatusListResponse(StandardizedModel):
    jobs: List[JobStatusResponse]


class JobStatsResponse(StandardizedModel):
    total_jobs: int
    running_jobs: int
    failed_jobs: int
    idle_jobs: int
    total_runs: int
