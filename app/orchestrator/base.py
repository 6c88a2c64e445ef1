"""Orchestrator interface: launches worker pools and reports their status."""

from abc import ABC, abstractmethod
from typing import AsyncGenerator

from app.jobs.models import JobRecord, WorkloadEvent


class Orchestrator(ABC):
    """Abstract interface to the cluster system that runs worker processes."""

    @abstractmethod
    async def create_workload(self, job: JobRecord) -> str:
        """Start ``job.total_workers`` parallel workers. Returns the workload name."""
        ...

    @abstractmethod
    def watch(self, name: str) -> AsyncGenerator[WorkloadEvent, None]:
        """Stream status events for one workload, in the order they happen.

        Raises UpstreamUnavailableError when the subscription breaks.
        """
        ...

    def close(self) -> None:
        """Release resources held for watches."""
