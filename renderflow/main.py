"""RenderFlow development render backend - FastAPI application.

A local stand-in for the remote render service. It speaks the same wire
contract but does not encode anything: each job is walked through the
lifecycle states on a timer and its source is passed through as output.

    uvicorn renderflow.main:app --port 3001
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Any, Dict
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from renderflow.api.v1 import jobs as jobs_api
from renderflow.api.v1.router import render_router
from renderflow.config import settings
from renderflow.jobs.in_process_queue import InProcessQueue, ReportFn
from renderflow.jobs.models import JobError, JobOutput, JobState, RenderJob, utcnow
from renderflow.storage.uploads import upload_store

logger = logging.getLogger(__name__)

# (state, progress_pct reached on entering it)
_SIMULATED_STAGES = (
    (JobState.PREPARING, 5),
    (JobState.DOWNLOADING, 15),
    (JobState.PROCESSING, 40),
    (JobState.ENCODING, 70),
    (JobState.MUXING, 85),
    (JobState.FINALIZING, 95),
)


def _source_size(source_url: str) -> int:
    """Byte size of the source if it is one of our uploads, else 0."""
    parts = urlparse(source_url).path.rstrip("/").split("/")
    if len(parts) >= 3 and parts[-3] == "uploads":
        upload_id, filename = parts[-2], parts[-1]
        if upload_store.file_exists(upload_id, filename):
            return os.path.getsize(upload_store.get_path(upload_id, filename))
    return 0


def run_render_job(job: RenderJob, input_params: Dict[str, Any], report: ReportFn) -> RenderJob:
    """Worker function: simulates one render.

    Called by the InProcessQueue via run_in_executor (runs in a thread).
    """
    started = time.monotonic()
    delay = settings.simulated_stage_delay_seconds
    source_url = input_params.get("source_url", "")

    for state, progress in _SIMULATED_STAGES:
        job = job.model_copy(update={"state": state, "progress_pct": progress})
        report(job)

        if state == JobState.DOWNLOADING and urlparse(source_url).scheme not in ("http", "https"):
            return job.model_copy(update={
                "state": JobState.FAILED,
                "error": JobError(code="INVALID_SOURCE", message=f"Unsupported source URL: {source_url}"),
                "completed_at": utcnow(),
            })
        time.sleep(delay)

    return RenderJob(
        **job.model_dump(exclude={"state", "progress_pct", "output", "completed_at"}),
        state=JobState.DONE,
        progress_pct=100,
        completed_at=utcnow(),
        output=JobOutput(
            output_url=source_url,
            file_size=_source_size(source_url),
            duration_ms=int((time.monotonic() - started) * 1000),
        ),
    )


# Global dispatcher reference
_dispatcher = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    global _dispatcher

    logger.info("Starting RenderFlow development backend on port %d", settings.backend_port)
    logger.info("Upload dir: %s (max %d MB)", settings.upload_dir, settings.max_upload_mb)
    logger.info("Simulated stage delay: %.2fs", settings.simulated_stage_delay_seconds)

    _dispatcher = InProcessQueue(worker_fn=run_render_job)
    await _dispatcher.start()
    jobs_api.set_dispatcher(_dispatcher)

    yield

    logger.info("Shutting down RenderFlow development backend")
    await _dispatcher.stop()
    jobs_api.set_dispatcher(None)
    upload_store.cleanup_expired()


app = FastAPI(
    title="RenderFlow Development Backend",
    description="Simulated render service implementing the RenderFlow job contract",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Errors use the contract's {"error": message} body instead of FastAPI's {"detail": ...}
@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": str(exc.errors())})


app.include_router(render_router)
