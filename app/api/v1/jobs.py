"""Job management API: submit compositions, poll status, download outputs."""

import os

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse
from pydantic import BaseModel

from app.errors import NotFoundError, ShuttingDownError, ValidationError
from app.jobs.models import CompositionRequest, JobRecord, JobStatus

router = APIRouter()

# These will be set by main.py during lifespan
_orchestrator = None
_output_store = None


def set_orchestrator(orchestrator):
    global _orchestrator
    _orchestrator = orchestrator


def set_output_store(store):
    global _output_store
    _output_store = store


class JobSubmitResponse(BaseModel):
    jobId: str


async def submit_composition(request: CompositionRequest) -> str:
    """Create a job, mapping synchronous errors onto HTTP status codes."""
    if _orchestrator is None:
        raise HTTPException(status_code=503, detail="Job orchestrator not initialized")
    try:
        return await _orchestrator.create(request)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ShuttingDownError as e:
        raise HTTPException(status_code=503, detail=str(e))


async def get_job_or_404(job_id: str) -> JobRecord:
    if _orchestrator is None:
        raise HTTPException(status_code=503, detail="Job orchestrator not initialized")
    job = await _orchestrator.status(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


async def output_response(job_id: str) -> FileResponse:
    """Stream a completed job's artifact."""
    job = await get_job_or_404(job_id)
    if job.status != JobStatus.COMPLETED:
        raise HTTPException(status_code=409, detail=f"Job is {job.status.value}, output not ready")

    if _output_store is None or not _output_store.exists(job.output_ref):
        raise HTTPException(status_code=404, detail="Output file not found")

    path = _output_store.resolve(job.output_ref)
    return FileResponse(path, media_type="video/mp4", filename=os.path.basename(path))


@router.post("/jobs", response_model=JobSubmitResponse)
async def submit_job(request: CompositionRequest):
    """Submit a composition. Returns immediately; poll GET /api/v1/jobs/{id}."""
    job_id = await submit_composition(request)
    return JobSubmitResponse(jobId=job_id)


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str):
    """Get the current status of a job."""
    job = await get_job_or_404(job_id)
    return job.to_public()


@router.get("/jobs/{job_id}/output")
async def get_job_output(job_id: str):
    """Download the composed video of a completed job."""
    return await output_response(job_id)
