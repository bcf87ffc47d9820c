"""Fixed-cadence poll loop for one batch of render jobs.

Cycles are strictly sequential: every non-terminal job is polled
concurrently, all requests settle, the batch is replaced, and only then
does the loop sleep before the next cycle. In-flight requests are thus
capped at the batch size even on a slow network.
"""

import asyncio
import logging
from typing import Callable, Dict, Iterable, Optional, Tuple

from renderflow.client.fallback import FallbackResolver
from renderflow.config import settings
from renderflow.jobs.models import RenderJob, is_batch_resolved, merge_snapshot

logger = logging.getLogger(__name__)

# Receives the batch snapshot after a cycle (or on resolution)
BatchCallback = Callable[[Tuple[RenderJob, ...]], None]


class PollLoop:
    """Keeps a batch of job snapshots fresh until every job is terminal."""

    def __init__(
        self,
        resolver: FallbackResolver,
        jobs: Iterable[RenderJob],
        *,
        interval: Optional[float] = None,
        on_update: Optional[BatchCallback] = None,
        on_resolved: Optional[BatchCallback] = None,
    ):
        self._resolver = resolver
        self._jobs: Tuple[RenderJob, ...] = tuple(jobs)
        self._interval = settings.poll_interval_seconds if interval is None else interval
        self._on_update = on_update
        self._on_resolved = on_resolved
        self._failures: Dict[str, int] = {}
        self._cycles = 0
        self._task: Optional[asyncio.Task] = None
        self._stopped = False
        self._resolved = False

    @property
    def jobs(self) -> Tuple[RenderJob, ...]:
        """Read-only snapshot of the batch."""
        return self._jobs

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def failure_counts(self) -> Dict[str, int]:
        """Consecutive failed polls per job id. Never alters job state."""
        return dict(self._failures)

    def start(self) -> asyncio.Task:
        if self._stopped:
            raise RuntimeError("PollLoop was stopped and cannot be restarted")
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        return self._task

    def cancel(self) -> None:
        """Stop immediately. Safe to call from synchronous code."""
        self._stopped = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def stop(self) -> None:
        self.cancel()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def wait(self) -> Tuple[RenderJob, ...]:
        """Run (if needed) until resolved or stopped; returns the final batch."""
        task = self.start() if self._task is None else self._task
        try:
            await task
        except asyncio.CancelledError:
            if not self._stopped:
                raise
        return self._jobs

    async def run_cycle(self) -> Tuple[RenderJob, ...]:
        """Poll every non-terminal job once and replace the batch."""
        pending = [job for job in self._jobs if not job.is_terminal]
        results = await asyncio.gather(
            *(self._resolver.get_job_status(job) for job in pending),
            return_exceptions=True,
        )
        if self._stopped:
            return self._jobs

        fresh_by_id = {}
        for job, result in zip(pending, results):
            if not isinstance(result, BaseException):
                try:
                    result = merge_snapshot(job, result)
                except ValueError as exc:
                    result = exc
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                self._failures[job.id] = self._failures.get(job.id, 0) + 1
                logger.warning(
                    "Poll of job %s failed (%d in a row), keeping last snapshot: %s",
                    job.id,
                    self._failures[job.id],
                    result,
                )
                continue
            self._failures.pop(job.id, None)
            fresh_by_id[job.id] = result

        self._jobs = tuple(fresh_by_id.get(job.id, job) for job in self._jobs)
        self._cycles += 1
        logger.debug("Poll cycle %d: %s", self._cycles, [j.state.value for j in self._jobs])
        return self._jobs

    async def _run(self) -> None:
        logger.info("Polling %d job(s) every %.2fs", len(self._jobs), self._interval)
        while not is_batch_resolved(self._jobs):
            await asyncio.sleep(self._interval)
            if self._stopped:
                return
            await self.run_cycle()
            if self._stopped:
                return
            if self._on_update is not None:
                self._on_update(self._jobs)

        self._resolved = True
        logger.info("Batch resolved after %d cycle(s)", self._cycles)
        if self._on_resolved is not None and not self._stopped:
            self._on_resolved(self._jobs)
