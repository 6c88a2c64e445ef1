"""Job submission and status streaming API."""

import logging

from fastapi import APIRouter, Depends, Form, HTTPException
from fastapi.responses import StreamingResponse

from app.api.v1.deps import get_coordinator, http_error
from app.auth.bearer import bearer_token
from app.jobs.coordinator import Coordinator
from app.jobs.errors import CoordinatorError

logger = logging.getLogger(__name__)

router = APIRouter()

_STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
}


def _status_stream(coordinator: Coordinator, job_id: str, queue) -> StreamingResponse:
    return StreamingResponse(
        coordinator.monitor.stream(job_id, queue),
        media_type="text/event-stream",
        headers=_STREAM_HEADERS,
    )


@router.post("/create")
async def create_job(
    imageUrl: str = Form(...),
    inputFolderPath: str = Form(""),
    outputFolderPath: str = Form(""),
    workers: int = Form(...),
    access_token: str = Depends(bearer_token),
    coordinator: Coordinator = Depends(get_coordinator),
):
    """Launch a job and stream its status until the merged result is uploaded.

    Each line of the response is one JSON status object from the
    orchestrator. A failed job ends with ``{"error": ..., "state": "failed"}``.
    """
    try:
        job = coordinator.new_job(
            image_ref=imageUrl,
            input_path=inputFolderPath,
            output_path=outputFolderPath,
            workers=workers,
            access_token=access_token,
        )
    except CoordinatorError as e:
        raise http_error(e)

    logger.info(f"Created job {job.id} for image {imageUrl}")

    # Subscribe before launching so no status event is missed.
    queue = coordinator.monitor.subscribe(job)
    try:
        await coordinator.launch(job)
    except CoordinatorError as e:
        coordinator.monitor.unsubscribe(job.id, queue)
        raise http_error(e)

    return _status_stream(coordinator, job.id, queue)


@router.get("/status/{job_id}")
async def stream_status(job_id: str, coordinator: Coordinator = Depends(get_coordinator)):
    """Re-attach to a job's status stream."""
    try:
        job = coordinator.registry.get(job_id)
    except CoordinatorError as e:
        raise http_error(e)
    queue = coordinator.monitor.subscribe(job)
    return _status_stream(coordinator, job.id, queue)


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, coordinator: Coordinator = Depends(get_coordinator)):
    """Snapshot of a job's counters and state."""
    try:
        job = coordinator.registry.get(job_id)
    except CoordinatorError as e:
        raise http_error(e)

    response = job.model_dump(mode="json")
    response["artifact_exists"] = coordinator.artifacts.exists(job_id)
    return response
