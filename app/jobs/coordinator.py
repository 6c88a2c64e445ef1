"""Coordinator: ties registry, partitions, artifacts, launcher and monitor together."""

import asyncio
import logging
from typing import Optional

from app.config import Settings
from app.jobs.errors import BadRequestError, UpstreamUnavailableError
from app.jobs.models import JobRecord, JobState, WorkerSpec
from app.jobs.monitor import CompletionMonitor
from app.jobs.partitions import PartitionAssigner
from app.jobs.registry import JobRegistry
from app.orchestrator.base import Orchestrator
from app.storage.artifacts import ArtifactStore
from app.storage.uploader import ResultUploader

logger = logging.getLogger(__name__)


class Coordinator:
    """Owns all job state for one process."""

    def __init__(
        self,
        settings: Settings,
        orchestrator: Orchestrator,
        uploader: Optional[ResultUploader] = None,
    ):
        self.settings = settings
        self.orchestrator = orchestrator
        self.uploader = uploader or ResultUploader(
            settings.storage_upload_url,
            timeout=settings.upload_timeout_seconds,
            max_attempts=settings.upload_max_attempts,
            base_delay=settings.upload_retry_base_delay,
        )
        self.registry = JobRegistry(retention_hours=settings.job_retention_hours)
        self.partitions = PartitionAssigner(self.registry)
        self.artifacts = ArtifactStore(self.registry, settings.storage_dir)
        self.monitor = CompletionMonitor(
            orchestrator,
            self.uploader,
            self.artifacts,
            max_reconnects=settings.watch_max_reconnects,
            retry_base_delay=settings.watch_retry_base_delay,
        )

    def job_name(self, job_id: str) -> str:
        parts = [self.settings.job_name_prefix, self.settings.columbus_username, job_id]
        return "-".join(p for p in parts if p)

    def callback_base_url(self) -> str:
        return self.settings.callback_url_template.format(
            username=self.settings.columbus_username
        )

    def new_job(
        self,
        image_ref: str,
        input_path: str,
        output_path: str,
        workers: int,
        access_token: str,
    ) -> JobRecord:
        """Validate a submission and register it as a new job."""
        if not image_ref:
            raise BadRequestError("imageUrl is required")
        if workers < 1:
            raise BadRequestError("workers must be at least 1")
        if not access_token:
            raise BadRequestError("An access token is required")

        job_id = self.registry.new_id()
        job = JobRecord(
            id=job_id,
            name=self.job_name(job_id),
            input_path=input_path,
            output_path=output_path,
            total_workers=workers,
            callback_base_url=self.callback_base_url(),
            image_ref=image_ref,
            access_token=access_token,
        )
        self.registry.register(job)
        return job

    async def launch(self, job: JobRecord) -> asyncio.Task:
        """Ask the orchestrator for the job's workers and start monitoring it."""
        try:
            await self.orchestrator.create_workload(job)
        except UpstreamUnavailableError as e:
            job.finish(JobState.FAILED, str(e))
            raise
        return self.monitor.start(job)

    async def assign_partition(self, job_id: str) -> WorkerSpec:
        return await self.partitions.assign(job_id)

    async def submit_chunk(self, job_id: str, data: bytes, final: bool = False) -> int:
        return await self.artifacts.submit_chunk(job_id, data, final=final)

    async def shutdown(self) -> None:
        await self.monitor.stop()
        self.orchestrator.close()
