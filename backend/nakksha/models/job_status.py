# backend/nakksha/models/job_status.py
"""Persisted status of scheduled background jobs."""

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from ..core.enums import JobState
from ..database import Base


class JobStatus(Base):
    __tablename__ = "job_statuses"

    name = Column(String(100), primary_key=True)
    status = Column(String(16), nullable=False, default=JobState.IDLE.value)
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    last_success_at = Column(DateTime(timezone=True), nullable=True)
    run_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    last_result = Column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<JobStatus {self.name} {self.status} runs={self.run_count}>"
