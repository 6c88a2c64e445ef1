"""Partition assignment: hands each worker its index within the job."""

import logging

from app.jobs.errors import CapacityExceededError, JobClosedError
from app.jobs.models import WorkerSpec
from app.jobs.registry import JobRegistry

logger = logging.getLogger(__name__)


class PartitionAssigner:
    def __init__(self, registry: JobRegistry):
        self._registry = registry

    async def assign(self, job_id: str) -> WorkerSpec:
        """Claim the next partition of a job.

        Indices are issued 0..N-1 exactly once each; the claim after the last
        one raises CapacityExceededError.
        """
        job = self._registry.get(job_id)
        async with job.counter_lock:
            if job.is_finished:
                raise JobClosedError(job_id, job.state.value)
            if job.assigned_workers >= job.total_workers:
                raise CapacityExceededError(job_id, job.total_workers)
            worker_id = job.assigned_workers
            job.assigned_workers += 1

        logger.info(f"Job {job_id}: assigned partition {worker_id}/{job.total_workers}")
        return WorkerSpec(
            worker_id=worker_id,
            total_workers=job.total_workers,
            input_folder_path=job.input_path,
        )
