"""Completion monitor: relays orchestrator status and triggers the final upload.

Each job gets one background task that owns the orchestrator subscription.
HTTP clients attach as subscribers and receive one JSON line per status
event, so a client going away never stops the watch or the upload.
"""

import asyncio
import json
import logging
from typing import AsyncIterator, Dict, List, Optional

from app.jobs.errors import CoordinatorError, UpstreamUnavailableError
from app.jobs.models import JobRecord, JobState
from app.orchestrator.base import Orchestrator
from app.storage.artifacts import ArtifactStore
from app.storage.uploader import ResultUploader
from app.utils.backoff import get_backoff_delay

logger = logging.getLogger(__name__)


def status_line(status: dict) -> str:
    return json.dumps(status, default=str) + "\n"


def error_line(message: str) -> str:
    return json.dumps({"error": message, "state": JobState.FAILED.value}) + "\n"


class _JobWatch:
    def __init__(self) -> None:
        self.subscribers: List[asyncio.Queue] = []
        self.task: Optional[asyncio.Task] = None


class CompletionMonitor:
    def __init__(
        self,
        orchestrator: Orchestrator,
        uploader: ResultUploader,
        artifacts: ArtifactStore,
        max_reconnects: int = 3,
        retry_base_delay: float = 1.0,
    ):
        self._orchestrator = orchestrator
        self._uploader = uploader
        self._artifacts = artifacts
        self._max_reconnects = max_reconnects
        self._retry_base_delay = retry_base_delay
        self._watches: Dict[str, _JobWatch] = {}

    def start(self, job: JobRecord) -> asyncio.Task:
        """Begin watching a job. Calling it again returns the running task."""
        watch = self._watches.setdefault(job.id, _JobWatch())
        if watch.task is None:
            watch.task = asyncio.create_task(self._run(job, watch), name=f"monitor-{job.id}")
        return watch.task

    def subscribe(self, job: JobRecord) -> asyncio.Queue:
        """Register a listener for a job's status lines.

        Subscribe before ``start`` to see every event. Late subscribers get
        the last known status first; subscribers of a finished job get the
        last status and the terminal line.
        """
        queue: asyncio.Queue = asyncio.Queue()
        if job.last_status is not None:
            queue.put_nowait(status_line(job.last_status))
        if job.is_finished:
            if job.state == JobState.FAILED:
                queue.put_nowait(error_line(job.error or "Job failed"))
            queue.put_nowait(None)
            return queue
        self._watches.setdefault(job.id, _JobWatch()).subscribers.append(queue)
        return queue

    def unsubscribe(self, job_id: str, queue: asyncio.Queue) -> None:
        watch = self._watches.get(job_id)
        if watch is None:
            return
        if queue in watch.subscribers:
            watch.subscribers.remove(queue)
        if watch.task is None and not watch.subscribers:
            del self._watches[job_id]

    async def stream(self, job_id: str, queue: asyncio.Queue) -> AsyncIterator[str]:
        """Yield queued lines until the monitor ends; detaches on exit."""
        try:
            while True:
                line = await queue.get()
                if line is None:
                    return
                yield line
        finally:
            self.unsubscribe(job_id, queue)

    def _publish(self, watch: _JobWatch, line: Optional[str]) -> None:
        for queue in watch.subscribers:
            queue.put_nowait(line)

    async def _run(self, job: JobRecord, watch: _JobWatch) -> None:
        reconnects = 0
        try:
            while True:
                events = self._orchestrator.watch(job.name)
                try:
                    async for event in events:
                        reconnects = 0
                        if event.name != job.name:
                            continue
                        job.last_status = event.status
                        self._publish(watch, status_line(event.status))
                        if event.is_complete:
                            await self._complete(job, watch)
                            return
                        if event.is_failed:
                            self._fail(job, watch, "Orchestrator reported the job as failed")
                            return
                    error = "Status stream ended before the job finished"
                except UpstreamUnavailableError as e:
                    error = str(e)
                finally:
                    await events.aclose()

                if reconnects >= self._max_reconnects:
                    self._fail(job, watch, f"Lost orchestrator status stream: {error}")
                    return
                delay = get_backoff_delay(reconnects, self._retry_base_delay)
                reconnects += 1
                logger.warning(
                    f"Job {job.id}: {error}; reconnecting "
                    f"({reconnects}/{self._max_reconnects}) in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
        except asyncio.CancelledError:
            logger.info(f"Job {job.id}: monitor cancelled")
            raise
        except Exception as e:
            logger.exception(f"Job {job.id}: monitor crashed")
            self._fail(job, watch, f"{type(e).__name__}: {e}")
        finally:
            self._publish(watch, None)
            watch.subscribers.clear()
            self._watches.pop(job.id, None)

    async def _complete(self, job: JobRecord, watch: _JobWatch) -> None:
        if job.uploaded:
            return
        path = self._artifacts.artifact_path(job.id)
        logger.info(f"Job {job.id}: complete, uploading {path} to {job.output_path}")
        # Chunks waiting on the write lock see the job closed once it is released.
        async with job.write_lock:
            try:
                await self._uploader.upload(path, job.output_path, job.access_token)
            except CoordinatorError as e:
                self._fail(job, watch, f"Upload failed: {e}")
                return
            job.uploaded = True
            job.finish(JobState.COMPLETE)
        logger.info(f"Job {job.id}: uploaded")

    def _fail(self, job: JobRecord, watch: _JobWatch, message: str) -> None:
        logger.error(f"Job {job.id}: {message}")
        job.finish(JobState.FAILED, message)
        self._publish(watch, error_line(message))

    def is_watching(self, job_id: str) -> bool:
        watch = self._watches.get(job_id)
        return watch is not None and watch.task is not None and not watch.task.done()

    async def stop(self) -> None:
        """Cancel every running monitor."""
        tasks = [w.task for w in self._watches.values() if w.task and not w.task.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
