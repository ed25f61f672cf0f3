# backend/nakksha/services/slot_horizon_service.py
"""
Rolling-horizon slot generation.

A scheduled job keeps every consultant with active patterns populated with
slots for [today, today + N days]. Each run records its state in the job
status store so operators can see when it last ran and whether it failed.
"""

from datetime import timedelta
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import ROLLING_GENERATION_JOB
from ..core.enums import JobState
from ..core.exceptions import DomainException, NotFoundException
from ..core.timezone_utils import get_consultant_today, utc_now
from ..models.job_status import JobStatus
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .cache_service import CacheService
from .slot_generator import SlotGenerator

logger = logging.getLogger(__name__)

KNOWN_JOBS = (ROLLING_GENERATION_JOB,)


class SlotHorizonService(BaseService):
    """Runs scheduled generation and exposes job status."""

    def __init__(
        self,
        db: Session,
        cache: Optional[CacheService] = None,
        generator: Optional[SlotGenerator] = None,
    ):
        super().__init__(db, cache)
        self.consultant_repository = RepositoryFactory.create_consultant_repository(db)
        self.job_repository = RepositoryFactory.create_job_status_repository(db)
        self.generator = generator or SlotGenerator(db, cache)

    @BaseService.measure_operation("run_rolling_generation")
    def run_rolling_generation(self, horizon_days: Optional[int] = None) -> Dict[str, Any]:
        """
        Generate the rolling horizon for every consultant with active patterns.

        A failure for one consultant is logged and counted; the run continues.
        The job ends in ``error`` state when any consultant failed.
        """
        days = horizon_days or settings.rolling_generation_days
        self._mark_running(ROLLING_GENERATION_JOB)

        consultants_processed = 0
        slots_created = 0
        failures: List[Dict[str, str]] = []

        try:
            consultant_ids = self.consultant_repository.get_ids_with_active_patterns()
            for consultant_id in consultant_ids:
                consultant = self.consultant_repository.get_by_id(consultant_id)
                today = get_consultant_today(consultant)
                try:
                    result = self.generator.generate_slots(
                        consultant_id,
                        today,
                        today + timedelta(days=days),
                        trigger="scheduled",
                    )
                except DomainException as e:
                    self.db.rollback()
                    failures.append({"consultant_id": consultant_id, "error": e.message})
                    self.logger.error(
                        "Scheduled slot generation failed",
                        extra={"consultant_id": consultant_id, "error": e.message},
                    )
                    continue
                consultants_processed += 1
                slots_created += result["slots_created"]
        except Exception as e:
            self.db.rollback()
            self._mark_finished(ROLLING_GENERATION_JOB, error=str(e), result=None)
            raise

        summary = {
            "horizon_days": days,
            "consultants_processed": consultants_processed,
            "consultants_failed": len(failures),
            "slots_created": slots_created,
        }
        error = None
        if failures:
            error = f"{len(failures)} consultant(s) failed: " + ", ".join(
                f["consultant_id"] for f in failures
            )
        self._mark_finished(ROLLING_GENERATION_JOB, error=error, result=summary)

        self.log_operation("run_rolling_generation", **summary)
        return summary

    # Job status store

    @BaseService.measure_operation("get_job_statuses")
    def get_job_statuses(self) -> List[JobStatus]:
        statuses = {status.name: status for status in self.job_repository.list_all()}
        missing = [name for name in KNOWN_JOBS if name not in statuses]
        if missing:
            with self.transaction():
                for name in missing:
                    statuses[name] = self.job_repository.get_or_create(name)
        return [statuses[name] for name in sorted(statuses)]

    @BaseService.measure_operation("get_job_stats")
    def get_job_stats(self) -> Dict[str, int]:
        statuses = self.get_job_statuses()
        return {
            "total_jobs": len(statuses),
            "running_jobs": sum(1 for s in statuses if s.status == JobState.RUNNING.value),
            "failed_jobs": sum(1 for s in statuses if s.status == JobState.ERROR.value),
            "idle_jobs": sum(1 for s in statuses if s.status == JobState.IDLE.value),
            "total_runs": sum(s.run_count or 0 for s in statuses),
        }

    def run_job(self, name: str) -> Dict[str, Any]:
        """Run a known job now, outside the beat schedule."""
        if name != ROLLING_GENERATION_JOB:
            raise NotFoundException(f"Job '{name}' not found", details={"job": name})
        return self.run_rolling_generation()

    def _mark_running(self, name: str) -> None:
        with self.transaction():
            status = self.job_repository.get_or_create(name)
            status.status = JobState.RUNNING.value
            status.last_run_at = utc_now()
            status.run_count = (status.run_count or 0) + 1
            status.error_message = None

    def _mark_finished(
        self, name: str, error: Optional[str], result: Optional[Dict[str, Any]]
    ) -> None:
        with self.transaction():
            status = self.job_repository.get_or_create(name)
            status.status = JobState.ERROR.value if error else JobState.IDLE.value
            status.error_message = error
            status.last_result = result
            if not error:
                status.last_success_at = utc_now()
