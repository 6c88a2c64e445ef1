"""Merged result artifacts: one append-only file per job."""

import asyncio
import logging
import os
from typing import Optional, Tuple

from app.jobs.errors import ArtifactIOError, JobClosedError
from app.jobs.registry import JobRegistry

logger = logging.getLogger(__name__)


def strip_header(data: bytes) -> bytes:
    """Drop everything up to and including the first newline.

    A chunk without any newline is taken to be a bare header line and
    nothing of it is kept.
    """
    newline = data.find(b"\n")
    if newline < 0:
        return b""
    return data[newline + 1:]


def _append(path: str, data: bytes) -> Tuple[bool, int]:
    """Append to the artifact. Returns (created, bytes written).

    Empty chunks are ignored so they never stand in for the header chunk.
    """
    if not data:
        return False, 0
    created = not os.path.exists(path)
    if not created:
        data = strip_header(data)
        if not data:
            return False, 0
    with open(path, "ab") as f:
        f.write(data)
    return created, len(data)


class ArtifactStore:
    """Merges worker chunks into ``<base_dir>/<job_id>.csv``.

    Every worker's chunk starts with the same header line; only the first
    chunk that reaches the artifact keeps it. Appends for one job are
    serialized on that job's write lock, in arrival order.
    """

    def __init__(self, registry: JobRegistry, base_dir: str, suffix: str = ".csv"):
        self._registry = registry
        self._base_dir = base_dir
        self._suffix = suffix

    @property
    def base_dir(self) -> str:
        return self._base_dir

    def ensure_dir(self) -> None:
        os.makedirs(self._base_dir, exist_ok=True)

    def artifact_path(self, job_id: str) -> str:
        return os.path.join(self._base_dir, f"{job_id}{self._suffix}")

    def exists(self, job_id: str) -> bool:
        return os.path.exists(self.artifact_path(job_id))

    async def submit_chunk(self, job_id: str, data: bytes, final: bool = False) -> int:
        """Append one worker chunk to the job's artifact.

        Returns the number of bytes actually appended. With ``final`` the
        submitting worker is counted as completed.
        """
        job = self._registry.get(job_id)
        path = self.artifact_path(job_id)
        loop = asyncio.get_running_loop()

        async with job.write_lock:
            if job.is_finished:
                raise JobClosedError(job_id, job.state.value)
            try:
                created, written = await loop.run_in_executor(None, _append, path, data)
            except OSError as e:
                raise ArtifactIOError(f"Could not write chunk for job {job_id}: {e}") from e

        if final:
            async with job.counter_lock:
                job.completed_workers = min(job.completed_workers + 1, job.total_workers)

        logger.debug(
            f"Job {job_id}: appended {written} of {len(data)} bytes"
            f"{' (new artifact)' if created else ''}"
        )
        return written

    def read(self, job_id: str) -> Optional[bytes]:
        path = self.artifact_path(job_id)
        if not os.path.exists(path):
            return None
        with open(path, "rb") as f:
            return f.read()
