"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from app.api.v1.health import router as health_router
from app.api.v1.jobs import router as jobs_router
from app.api.v1.workers import router as workers_router

# Workers and clients call these paths at the root, without a version prefix.
v1_router = APIRouter()
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(jobs_router, tags=["jobs"])
v1_router.include_router(workers_router, tags=["workers"])
