"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter()

# Set by main.py during lifespan
_engine = None


def set_engine(engine):
    global _engine
    _engine = engine


@router.get("/health")
async def health_check():
    """Service health and composition engine availability."""
    return {
        "status": "ok",
        "service": "VideoEditorPro Backend",
        "engine_available": bool(_engine and _engine.available),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
