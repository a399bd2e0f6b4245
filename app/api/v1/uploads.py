"""Ingestion endpoint: store an uploaded media file and hand back its id."""

from fastapi import APIRouter, File, HTTPException, UploadFile

from app.config import settings
from app.log import get_logger
from app.storage.media_store import StoredMedia, UploadTooLargeError

logger = get_logger("api.uploads")

router = APIRouter()

# Wired in during lifespan (same pattern as jobs.py)
_upload_store = None


def set_upload_store(store):
    global _upload_store
    _upload_store = store


async def store_upload(file: UploadFile) -> StoredMedia:
    if _upload_store is None:
        raise HTTPException(status_code=503, detail="Upload store not ready")

    max_bytes = settings.max_upload_mb * 1024 * 1024
    try:
        stored = await _upload_store.save_upload(file, max_bytes)
    except UploadTooLargeError as e:
        raise HTTPException(status_code=413, detail=str(e))
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save upload: {e}")

    logger.info(f"Video uploaded: {stored.id}", extra={"size": stored.size})
    return stored


@router.post("/uploads")
async def upload_media(file: UploadFile = File(...)):
    """Accept a media upload.

    Returns:
        {id, size}
    """
    stored = await store_upload(file)
    return {"id": stored.id, "size": stored.size}
