"""Asyncio render queue for the development backend.

Jobs run one at a time in a background task. Every snapshot a worker
reports is visible to pollers straight away, so GET /jobs/{id} walks
through the lifecycle states while the worker is still running.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from renderflow.jobs.dispatcher import JobDispatcher
from renderflow.jobs.models import JobError, JobState, RenderJob, utcnow

logger = logging.getLogger(__name__)

# Publishes an intermediate snapshot while a worker is running
ReportFn = Callable[[RenderJob], None]


class InProcessQueue(JobDispatcher):
    """Local async job queue. Processes jobs one at a time via asyncio."""

    def __init__(self, worker_fn: Callable[[RenderJob, Dict[str, Any], ReportFn], RenderJob]):
        """
        worker_fn: callable(job, input_params, report) -> RenderJob
            Synchronous function that does the work. Calls `report` with each
            intermediate snapshot and returns the terminal one. Runs in a
            thread executor to avoid blocking the event loop.
        """
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._jobs: Dict[str, RenderJob] = {}
        self._inputs: Dict[str, Dict[str, Any]] = {}
        self._worker_fn = worker_fn
        self._task: Optional[asyncio.Task] = None
        self._running = False

    async def submit(self, job: RenderJob, input_params: Optional[Dict[str, Any]] = None) -> str:
        self._jobs[job.id] = job
        self._inputs[job.id] = dict(input_params or {})
        await self._queue.put(job.id)
        return job.id

    async def get_status(self, job_id: str) -> Optional[RenderJob]:
        return self._jobs.get(job_id)

    async def list_jobs(self, limit: int) -> List[RenderJob]:
        jobs = sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._worker_loop())

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    def _report(self, job: RenderJob) -> None:
        self._jobs[job.id] = job

    async def _worker_loop(self) -> None:
        """Process jobs one at a time from the queue."""
        while self._running:
            try:
                job_id = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

            job = self._jobs.get(job_id)
            if job is None:
                continue

            try:
                loop = asyncio.get_running_loop()
                finished = await loop.run_in_executor(
                    None, self._worker_fn, job, self._inputs.get(job_id, {}), self._report
                )
                self._jobs[job_id] = finished
            except Exception as e:
                logger.exception("Render worker crashed on job %s", job_id)
                last = self._jobs.get(job_id, job)
                self._jobs[job_id] = last.model_copy(update={
                    "state": JobState.FAILED,
                    "error": JobError(code="WORKER_ERROR", message=f"{type(e).__name__}: {e}"),
                    "output": None,
                    "completed_at": utcnow(),
                })
