"""
Test configuration and fixtures for the coordinator tests.

Provides shared fixtures for:
- Settings pointing at a temporary storage directory
- An in-memory orchestrator driven by the test
- A recording uploader
- A fully wired Coordinator
"""

import asyncio
from typing import List, Optional

import pytest

from app.config import Settings
from app.jobs.coordinator import Coordinator
from app.jobs.errors import CoordinatorError
from app.jobs.models import JobRecord, WorkloadEvent
from app.orchestrator.base import Orchestrator


def make_event(name: str, *conditions: str, active: int = 0, status: str = "True") -> WorkloadEvent:
    """Orchestrator status event carrying the given condition types."""
    return WorkloadEvent(
        name=name,
        status={
            "active": active,
            "conditions": [{"type": c, "status": status} for c in conditions],
        },
    )


class FakeOrchestrator(Orchestrator):
    """Orchestrator whose status stream is fed by the test.

    Queue items: a WorkloadEvent is yielded, an exception is raised from the
    stream, None ends the stream.
    """

    def __init__(self):
        self.created: List[JobRecord] = []
        self.watch_calls: List[str] = []
        self.create_error: Optional[Exception] = None
        self.events: asyncio.Queue = asyncio.Queue()
        self.launched = asyncio.Event()

    async def create_workload(self, job: JobRecord) -> str:
        if self.create_error is not None:
            raise self.create_error
        self.created.append(job)
        self.launched.set()
        return job.name

    async def wait_for_launch(self, timeout: float = 5.0) -> JobRecord:
        await asyncio.wait_for(self.launched.wait(), timeout)
        return self.created[-1]

    def push(self, item) -> None:
        self.events.put_nowait(item)

    async def watch(self, name: str):
        self.watch_calls.append(name)
        while True:
            item = await self.events.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item


class FakeUploader:
    """Records upload calls instead of talking to the storage service."""

    def __init__(self, error: Optional[CoordinatorError] = None):
        self.calls: List[dict] = []
        self.error = error

    async def upload(self, local_path: str, destination_path: str, access_token: str) -> None:
        with open(local_path, "rb") as f:
            contents = f.read()
        self.calls.append(
            {
                "local_path": local_path,
                "destination_path": destination_path,
                "access_token": access_token,
                "contents": contents,
            }
        )
        if self.error is not None:
            raise self.error


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        storage_dir=str(tmp_path / "output"),
        columbus_username="tester",
        watch_max_reconnects=2,
        watch_retry_base_delay=0.0,
        upload_retry_base_delay=0.0,
    )


@pytest.fixture
def fake_orchestrator() -> FakeOrchestrator:
    return FakeOrchestrator()


@pytest.fixture
def fake_uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def coordinator(settings, fake_orchestrator, fake_uploader) -> Coordinator:
    coordinator = Coordinator(settings, fake_orchestrator, fake_uploader)
    coordinator.artifacts.ensure_dir()
    return coordinator


@pytest.fixture
def job(coordinator) -> JobRecord:
    return coordinator.new_job(
        image_ref="registry.local/profiler:1",
        input_path="/datasets/input",
        output_path="/users/tester/results",
        workers=3,
        access_token="secret-token",
    )
