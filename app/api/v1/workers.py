"""Worker-facing API: partition claims and chunk submission."""

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from app.api.v1.deps import get_coordinator, http_error
from app.jobs.coordinator import Coordinator
from app.jobs.errors import CoordinatorError

router = APIRouter()


@router.post("/init")
async def init_worker(uid: str = Form(...), coordinator: Coordinator = Depends(get_coordinator)):
    """Claim the next partition of a job.

    Returns:
        {workerId, nWorkers, inputFolderPath}
    """
    try:
        spec = await coordinator.assign_partition(uid)
    except CoordinatorError as e:
        raise http_error(e)
    return spec.model_dump(by_alias=True)


@router.post("/write-chunk")
async def write_chunk(
    chunk: UploadFile = File(...),
    uid: str = Form(...),
    final: bool = Form(False),
    coordinator: Coordinator = Depends(get_coordinator),
):
    """Append a worker's result chunk to the job's merged artifact."""
    data = await chunk.read()
    try:
        await coordinator.submit_chunk(uid, data, final=final)
    except CoordinatorError as e:
        raise http_error(e)
    finally:
        await chunk.close()
    return Response(status_code=200)
