"""Health check endpoint."""

import shutil

from fastapi import APIRouter

router = APIRouter()


@router.get("/health")
async def health_check():
    """Service liveness and whether an ffmpeg binary is available."""
    return {
        "ok": True,
        "ffmpeg": "ready" if shutil.which("ffmpeg") else "unavailable",
    }
