"""Source video upload API.

  POST /upload                          - receive a video file, return {url, size}
  GET  /uploads/{upload_id}/{filename}  - serve it back to the render worker
"""

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse

from renderflow.config import settings
from renderflow.storage.uploads import upload_store

router = APIRouter()


@router.post("/upload")
async def upload_video(request: Request, file: UploadFile = File(...)):
    if not file.content_type or not file.content_type.startswith("video/"):
        raise HTTPException(status_code=415, detail="Only video files allowed")

    max_bytes = settings.max_upload_mb * 1024 * 1024
    upload_id, filename, path = upload_store.new_upload(file.filename or "video.mp4")

    total = 0
    try:
        with open(path, "wb") as dst:
            while True:
                chunk = await file.read(1024 * 1024)  # 1 MB chunks
                if not chunk:
                    break
                total += len(chunk)
                if total > max_bytes:
                    raise HTTPException(
                        status_code=413,
                        detail=f"File too large (max {settings.max_upload_mb} MB)",
                    )
                dst.write(chunk)
    except HTTPException:
        upload_store.discard(upload_id)
        raise
    except OSError as exc:
        upload_store.discard(upload_id)
        raise HTTPException(status_code=500, detail=f"Failed to save upload: {exc}")

    url = request.url_for("download_upload", upload_id=upload_id, filename=filename)
    return {"url": str(url), "size": total}


@router.get("/uploads/{upload_id}/{filename}", name="download_upload")
async def download_upload(upload_id: str, filename: str):
    if not upload_store.file_exists(upload_id, filename):
        raise HTTPException(status_code=404, detail="Upload not found")
    return FileResponse(upload_store.get_path(upload_id, filename), filename=filename)
