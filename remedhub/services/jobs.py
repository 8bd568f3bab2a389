"""
Job collaborator.

The completion workflow reads estimates from the job and, on approval, tells
the job to close itself. It only talks to the job through ``JobProvider`` so it
can run against the SQL mirror here or any other job store.
"""
import uuid
from datetime import date, datetime
from typing import Optional

import pytz
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import NotFoundError
from ..models.models import Job


class JobProvider:
    def get_job(self, job_id: uuid.UUID) -> Job:
        """Return the job or raise NotFoundError."""
        raise NotImplementedError

    def link_completion(self, job_id: uuid.UUID, completion_id: uuid.UUID) -> None:
        raise NotImplementedError

    def mark_completed(self, job_id: uuid.UUID, on_date: date) -> None:
        """Set status=completed and actual_end_date=on_date."""
        raise NotImplementedError


class SqlJobProvider(JobProvider):
    def __init__(self, db: Session):
        self.db = db

    def get_job(self, job_id: uuid.UUID) -> Job:
        job = self.db.query(Job).filter(Job.id == job_id).first()
        if job is None:
            raise NotFoundError("job", job_id)
        return job

    def link_completion(self, job_id: uuid.UUID, completion_id: uuid.UUID) -> None:
        self.get_job(job_id).completion_id = completion_id

    def mark_completed(self, job_id: uuid.UUID, on_date: date) -> None:
        job = self.get_job(job_id)
        job.status = "completed"
        job.actual_end_date = on_date


def get_job_for_user(db: Session, job_id: uuid.UUID, organization_id: uuid.UUID) -> Job:
    """Tenant-scoped job lookup; a job of another organization is reported as missing."""
    job = db.query(Job).filter(Job.id == job_id, Job.organization_id == organization_id).first()
    if job is None:
        raise NotFoundError("job", job_id)
    return job


def local_today(tz_name: Optional[str] = None) -> date:
    tz = pytz.timezone(tz_name or settings.tz_default)
    return datetime.now(tz).date()
