"""Health check endpoint."""

import platform
import sys

from fastapi import APIRouter, Depends

from app.api.v1.deps import get_coordinator
from app.jobs.coordinator import Coordinator
from app.jobs.models import JobState

router = APIRouter()


@router.get("/health")
async def health_check(coordinator: Coordinator = Depends(get_coordinator)):
    """Service health and job counts."""
    jobs = coordinator.registry.list()
    return {
        "status": "healthy",
        "jobs": {
            "total": len(jobs),
            "watching": sum(1 for j in jobs if j.state == JobState.WATCHING),
            "complete": sum(1 for j in jobs if j.state == JobState.COMPLETE),
            "failed": sum(1 for j in jobs if j.state == JobState.FAILED),
        },
        "storage_dir": coordinator.artifacts.base_dir,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
