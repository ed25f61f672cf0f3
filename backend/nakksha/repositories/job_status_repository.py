# backend/nakksha/repositories/job_status_repository.py
"""Job status store for scheduled background jobs."""

from typing import List

from sqlalchemy.orm import Session

from ..core.enums import JobState
from ..models.job_status import JobStatus
from .base_repository import BaseRepository


class JobStatusRepository(BaseRepository[JobStatus]):
    def __init__(self, db: Session):
        super().__init__(db, JobStatus)

    def get_or_create(self, name: str) -> JobStatus:
        status = self.get_by_id(name)
        if status is None:
            status = self.create(name=name, status=JobState.IDLE.value, run_count=0)
        return status

    def list_all(self) -> List[JobStatus]:
        return self._execute_query(self._build_query().order_by(JobStatus.name))
