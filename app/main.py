"""Profiler Coordinator - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.router import v1_router
from app.config import Settings, settings as default_settings
from app.jobs.coordinator import Coordinator
from app.orchestrator.base import Orchestrator
from app.storage.uploader import ResultUploader

logger = logging.getLogger("app")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[Orchestrator] = None,
    uploader: Optional[ResultUploader] = None,
) -> FastAPI:
    """Build the service. Collaborators not passed in are created at startup."""
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown logic."""
        logger.info(f"Starting Profiler Coordinator (storage_dir={settings.storage_dir})")

        orch = orchestrator
        if orch is None:
            # Imported here so the kubernetes client is only needed when used.
            from app.orchestrator.k8s import KubernetesOrchestrator

            orch = KubernetesOrchestrator.from_settings(settings)

        coordinator = Coordinator(settings, orch, uploader)
        coordinator.artifacts.ensure_dir()
        app.state.coordinator = coordinator

        yield

        logger.info("Shutting down Profiler Coordinator")
        await coordinator.shutdown()

    app = FastAPI(
        title="Profiler Coordinator",
        description="Fan-out/fan-in coordination of parallel worker jobs",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

    app.include_router(v1_router)
    return app


configure_logging(default_settings.log_level)
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=default_settings.compute_port)
