"""Render job data model and lifecycle helpers."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# Ids carrying this prefix were never dispatched to a real backend
PREVIEW_PREFIX = "preview_"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobState(str, Enum):
    QUEUED = "queued"
    PREPARING = "preparing"
    DOWNLOADING = "downloading"
    PROCESSING = "processing"
    ENCODING = "encoding"
    MUXING = "muxing"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({JobState.DONE, JobState.FAILED})

# Expected forward order; FAILED can follow any non-terminal state
STATE_ORDER = (
    JobState.QUEUED,
    JobState.PREPARING,
    JobState.DOWNLOADING,
    JobState.PROCESSING,
    JobState.ENCODING,
    JobState.MUXING,
    JobState.FINALIZING,
    JobState.DONE,
)


class JobOutput(BaseModel):
    output_url: str
    file_size: int = 0
    duration_ms: int = 0


class JobError(BaseModel):
    code: str
    message: str


class RenderJob(BaseModel):
    """Snapshot of one render job as last reported by the backend.

    Snapshots are immutable; a fresh poll produces a new snapshot which
    replaces the old one wholesale (see `merge_snapshot`).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    variation_id: str = ""
    project_id: str = ""
    state: JobState = JobState.QUEUED
    progress_pct: int = Field(default=0, ge=0, le=100)
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    output: Optional[JobOutput] = None
    error: Optional[JobError] = None

    @model_validator(mode="before")
    @classmethod
    def _done_is_complete(cls, data: Any) -> Any:
        # A done job is 100% by definition
        if isinstance(data, dict) and data.get("state") in (JobState.DONE, "done"):
            data = {**data, "progress_pct": 100}
        return data

    @model_validator(mode="after")
    def _payload_matches_state(self) -> "RenderJob":
        if self.output is not None and self.state != JobState.DONE:
            raise ValueError(f"output present on a job in state '{self.state.value}'")
        if self.error is not None and self.state != JobState.FAILED:
            raise ValueError(f"error present on a job in state '{self.state.value}'")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def ref(self) -> "JobRef":
        return job_ref(self.id)


# ---------------------------------------------------------------------------
# Job references: real jobs are routable to the backend, synthetic ones are not
# ---------------------------------------------------------------------------

class RealJob(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["real"] = "real"
    id: str


class SyntheticJob(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["synthetic"] = "synthetic"
    id: str


JobRef = Union[RealJob, SyntheticJob]


def job_ref(job_id: str) -> JobRef:
    """Classify a raw job id at the boundary."""
    if job_id.startswith(PREVIEW_PREFIX):
        return SyntheticJob(id=job_id)
    return RealJob(id=job_id)


def as_job_ref(job: Union[str, RealJob, SyntheticJob, RenderJob]) -> JobRef:
    if isinstance(job, (RealJob, SyntheticJob)):
        return job
    if isinstance(job, RenderJob):
        return job.ref
    return job_ref(job)


# ---------------------------------------------------------------------------
# Batch helpers
# ---------------------------------------------------------------------------

class BatchOutcome(str, Enum):
    IDLE = "idle"
    RENDERING = "rendering"
    DONE = "done"
    FAILED = "failed"


def merge_snapshot(previous: RenderJob, fresh: RenderJob) -> RenderJob:
    """Merge a freshly polled snapshot over the previous one.

    The fresh snapshot wins entirely: `progress_pct`, `output` and `error`
    only mean something alongside the `state` they were reported with.
    """
    if fresh.id != previous.id:
        raise ValueError(f"Cannot merge snapshot of '{fresh.id}' over '{previous.id}'")
    return fresh


def is_batch_resolved(jobs: Iterable[RenderJob]) -> bool:
    """True when every job is terminal. An empty batch is resolved."""
    return all(job.is_terminal for job in jobs)


def batch_outcome(jobs: Iterable[RenderJob]) -> BatchOutcome:
    jobs = list(jobs)
    if not jobs:
        return BatchOutcome.IDLE
    if not is_batch_resolved(jobs):
        return BatchOutcome.RENDERING
    if any(job.state == JobState.FAILED for job in jobs):
        return BatchOutcome.FAILED
    return BatchOutcome.DONE


def placeholder_jobs(
    refs: Iterable[JobRef],
    project_id: str,
    variation_ids: Iterable[str],
) -> List[RenderJob]:
    """Queued 0% snapshots for a submission that has not been polled yet."""
    created = utcnow()
    return [
        RenderJob(
            id=ref.id,
            variation_id=variation_id,
            project_id=project_id,
            state=JobState.QUEUED,
            progress_pct=0,
            created_at=created,
        )
        for ref, variation_id in zip(refs, variation_ids)
    ]


def synthesize_preview_job(
    ref: SyntheticJob,
    previous: Optional[RenderJob] = None,
) -> RenderJob:
    """Terminal `done` snapshot for a job that was never dispatched.

    Carries no output: nothing was rendered.
    """
    now = utcnow()
    return RenderJob(
        id=ref.id,
        variation_id=previous.variation_id if previous else ref.id[len(PREVIEW_PREFIX):],
        project_id=previous.project_id if previous else "",
        state=JobState.DONE,
        progress_pct=100,
        created_at=previous.created_at if previous else now,
        completed_at=now,
    )
