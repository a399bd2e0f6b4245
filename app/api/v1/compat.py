"""Browser-facing compatibility API.

Provides the paths and field names the existing frontend already uses:
  POST /upload             — multipart field "video", returns {fileId}
  POST /process            — {video1, video2, layout, audioOption}, returns {jobId}
  GET  /status/{job_id}   — poll job progress
  GET  /download/{job_id} — stream the composed video

This is a thin layer over the /api/v1 jobs system. Unlike the old
synchronous /process, the response comes back as soon as the job exists.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, File, UploadFile
from pydantic import BaseModel

from app.api.v1 import jobs as jobs_api
from app.api.v1.uploads import store_upload
from app.jobs.models import CompositionRequest

router = APIRouter()


class ProcessRequest(BaseModel):
    video1: Optional[str] = None
    video2: Optional[str] = None
    layout: Any = None
    audioOption: Any = None
    perInputSettings: Optional[Dict[str, Any]] = None


@router.post("/upload")
async def upload_video(video: UploadFile = File(...)):
    stored = await store_upload(video)
    return {
        "success": True,
        "fileId": stored.id,
        "size": stored.size,
        "message": "Video uploaded successfully",
    }


@router.post("/process")
async def process_videos(request: ProcessRequest):
    job_id = await jobs_api.submit_composition(
        CompositionRequest(
            input_a=request.video1,
            input_b=request.video2,
            layout=request.layout,
            per_input_settings=request.perInputSettings,
            audio_mix_policy=request.audioOption,
        )
    )
    return {
        "success": True,
        "jobId": job_id,
        "message": "Processing started. Poll GET /status/{jobId} for progress.",
    }


@router.get("/status/{job_id}")
async def get_status(job_id: str):
    job = await jobs_api.get_job_or_404(job_id)
    return {
        **job.to_public(),
        "message": _status_message(job.status.value),
    }


@router.get("/download/{job_id}")
async def download_video(job_id: str):
    return await jobs_api.output_response(job_id)


def _status_message(status: str) -> str:
    return {
        "processing": "Processing videos…",
        "completed": "Videos processed successfully",
        "failed": "Processing failed",
    }.get(status, "")
