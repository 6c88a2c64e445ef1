"""In-memory registry of live jobs, keyed by job id."""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from app.jobs.errors import JobNotFoundError
from app.jobs.models import JobRecord, generate_uid

logger = logging.getLogger(__name__)


class JobRegistry:
    """Holds every job known to this process.

    Lookups are plain dict reads. Mutations of a single job go through that
    job's own locks, so work on one job never waits on another.
    """

    def __init__(self, retention_hours: int = 2):
        self._jobs: Dict[str, JobRecord] = {}
        self._retention = timedelta(hours=retention_hours)

    def new_id(self) -> str:
        """Generate an id not used by any live job."""
        while True:
            job_id = generate_uid()
            if job_id not in self._jobs:
                return job_id

    def register(self, job: JobRecord) -> str:
        self.prune()
        if job.id in self._jobs:
            raise ValueError(f"Job id '{job.id}' is already registered")
        self._jobs[job.id] = job
        logger.info(f"Registered job {job.id} ({job.name}, {job.total_workers} workers)")
        return job.id

    def get(self, job_id: str) -> JobRecord:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def remove(self, job_id: str) -> Optional[JobRecord]:
        return self._jobs.pop(job_id, None)

    def list(self) -> List[JobRecord]:
        return list(self._jobs.values())

    def __len__(self) -> int:
        return len(self._jobs)

    def prune(self, now: Optional[datetime] = None) -> int:
        """Drop finished jobs older than the retention window. Returns count removed."""
        now = now or datetime.utcnow()
        expired = [
            job_id
            for job_id, job in self._jobs.items()
            if job.finished_at is not None and now - job.finished_at > self._retention
        ]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.debug(f"Pruned {len(expired)} finished job(s)")
        return len(expired)
