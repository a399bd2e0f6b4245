"""VideoEditorPro Backend - FastAPI application."""

from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.v1.router import v1_router, compat_router_root
from app.api.v1.health import router as health_root_router
from app.api.v1 import health as health_api
from app.api.v1 import jobs as jobs_api
from app.api.v1 import uploads as uploads_api
from app.composition.engine import FFmpegEngine
from app.jobs.orchestrator import JobOrchestrator
from app.log import get_logger
from app.storage.media_store import MediaStore
from app.storage.retention import RetentionManager

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info(f"Starting VideoEditorPro Backend on port {settings.port}")
    logger.info(f"Upload dir: {settings.upload_dir}, output dir: {settings.output_dir}")

    upload_store = MediaStore(settings.upload_dir, kind="upload")
    output_store = MediaStore(settings.output_dir, kind="output")

    engine = FFmpegEngine(ffmpeg_path=settings.ffmpeg_path)
    if not engine.available:
        logger.warning("FFmpeg not found; compositions will fail until it is installed")

    orchestrator = JobOrchestrator(
        engine=engine,
        upload_store=upload_store,
        output_store=output_store,
        channel_size=settings.event_channel_size,
    )
    await orchestrator.start()

    retention = RetentionManager(
        store=orchestrator.store,
        upload_store=upload_store,
        output_store=output_store,
        retention_window=timedelta(hours=settings.retention_window_hours),
        input_cleanup_delay=timedelta(seconds=settings.input_cleanup_delay_seconds),
        interval_seconds=settings.retention_sweep_interval_seconds,
    )
    await retention.start()
    logger.info("Job orchestrator and retention sweep started")

    # Wire orchestrator and stores into API endpoints
    health_api.set_engine(engine)
    jobs_api.set_orchestrator(orchestrator)
    jobs_api.set_output_store(output_store)
    uploads_api.set_upload_store(upload_store)

    yield

    # Shutdown
    logger.info("Shutting down VideoEditorPro Backend")
    await retention.stop()
    await orchestrator.stop()
    retention.sweep()


app = FastAPI(
    title="VideoEditorPro Backend",
    description="Asynchronous two-video composition service",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints
app.include_router(compat_router_root)  # /upload, /process, /status, /download compat layer
