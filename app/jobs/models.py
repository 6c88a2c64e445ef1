"""Job record and wire models for fan-out/fan-in processing."""

import asyncio
import secrets
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

_UID_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
UID_LENGTH = 10


def generate_uid() -> str:
    """Random lowercase id; safe inside Kubernetes object names."""
    return "".join(secrets.choice(_UID_ALPHABET) for _ in range(UID_LENGTH))


class JobState(str, Enum):
    WATCHING = "watching"
    COMPLETE = "complete"
    FAILED = "failed"


class JobRecord(BaseModel):
    """Tracks one submitted job from launch to upload.

    The counter lock serializes ``assigned_workers`` / ``completed_workers``
    updates, the write lock serializes appends to the job's artifact.
    """
    id: str
    name: str
    input_path: str
    output_path: str
    total_workers: int
    assigned_workers: int = 0
    completed_workers: int = 0
    callback_base_url: str
    image_ref: str
    access_token: str = Field(exclude=True, repr=False)
    state: JobState = JobState.WATCHING
    uploaded: bool = False
    error: Optional[str] = None
    last_status: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    _counter_lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)
    _write_lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)

    @property
    def counter_lock(self) -> asyncio.Lock:
        return self._counter_lock

    @property
    def write_lock(self) -> asyncio.Lock:
        return self._write_lock

    @property
    def is_finished(self) -> bool:
        return self.state != JobState.WATCHING

    def finish(self, state: JobState, error: Optional[str] = None) -> None:
        self.state = state
        self.error = error
        self.finished_at = datetime.utcnow()


class WorkerSpec(BaseModel):
    """Partition claim returned to a worker by POST /init."""
    model_config = ConfigDict(populate_by_name=True)

    worker_id: int = Field(alias="workerId")
    total_workers: int = Field(alias="nWorkers")
    input_folder_path: str = Field(alias="inputFolderPath")


class WorkloadCondition(BaseModel):
    type: str
    status: str = "Unknown"


class WorkloadEvent(BaseModel):
    """One status update for a workload, as reported by the orchestrator."""
    name: str
    status: Dict[str, Any] = Field(default_factory=dict)

    @property
    def conditions(self) -> List[WorkloadCondition]:
        raw = self.status.get("conditions") or []
        return [
            WorkloadCondition(type=c.get("type", ""), status=c.get("status", "Unknown"))
            for c in raw
        ]

    def has_condition(self, condition_type: str) -> bool:
        return any(
            c.type == condition_type and c.status == "True" for c in self.conditions
        )

    @property
    def is_complete(self) -> bool:
        return self.has_condition("Complete")

    @property
    def is_failed(self) -> bool:
        return self.has_condition("Failed")
