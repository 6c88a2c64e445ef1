"""Request-scoped access to the coordinator."""

from fastapi import HTTPException, Request

from app.jobs.coordinator import Coordinator
from app.jobs.errors import CoordinatorError


def get_coordinator(request: Request) -> Coordinator:
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Coordinator not initialized")
    return coordinator


def http_error(exc: CoordinatorError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))
