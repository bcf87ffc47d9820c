"""Job API: submit variation batches, poll status, list history."""

import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from renderflow.jobs.models import RenderJob

router = APIRouter()

# Set by main.py during lifespan
_dispatcher = None


def set_dispatcher(dispatcher):
    global _dispatcher
    _dispatcher = dispatcher


class VariationData(BaseModel):
    source_url: str = ""
    context: Optional[Dict[str, Any]] = None


class Variation(BaseModel):
    id: str
    data: VariationData = Field(default_factory=VariationData)


class JobSubmitRequest(BaseModel):
    project_id: str
    variations: List[Variation] = Field(default_factory=list)


class JobSubmitResponse(BaseModel):
    ids: List[str]


def _serialize(job: RenderJob) -> Dict[str, Any]:
    return job.model_dump(mode="json", exclude_none=True)


@router.post("/jobs", response_model=JobSubmitResponse)
async def submit_jobs(request: JobSubmitRequest):
    """Create one render job per requested variation."""
    if _dispatcher is None:
        raise HTTPException(status_code=503, detail="Job dispatcher not initialized")

    if not request.variations:
        raise HTTPException(status_code=400, detail="At least one variation is required")

    missing = [v.id for v in request.variations if not v.data.source_url]
    if missing:
        raise HTTPException(
            status_code=400,
            detail=f"Variations missing data.source_url: {', '.join(missing)}",
        )

    ids = []
    for variation in request.variations:
        job = RenderJob(
            id=str(uuid.uuid4()),
            variation_id=variation.id,
            project_id=request.project_id,
        )
        await _dispatcher.submit(job, {"source_url": variation.data.source_url})
        ids.append(job.id)
    return JobSubmitResponse(ids=ids)


@router.get("/jobs")
async def list_jobs(limit: int = Query(20, ge=1, le=100)):
    """Most recent jobs first."""
    if _dispatcher is None:
        raise HTTPException(status_code=503, detail="Job dispatcher not initialized")

    jobs = await _dispatcher.list_jobs(limit)
    return {"jobs": [_serialize(job) for job in jobs]}


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str):
    if _dispatcher is None:
        raise HTTPException(status_code=503, detail="Job dispatcher not initialized")

    job = await _dispatcher.get_status(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return _serialize(job)
