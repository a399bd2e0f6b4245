"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from app.api.v1.health import router as health_router
from app.api.v1.jobs import router as jobs_router
from app.api.v1.uploads import router as uploads_router
from app.api.v1.compat import router as compat_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(uploads_router, tags=["uploads"])
v1_router.include_router(jobs_router, tags=["jobs"])

# Compatibility shim — mounts /upload, /process, /status/{id}, /download/{id} at root
compat_router_root = APIRouter()
compat_router_root.include_router(compat_router, tags=["compat"])
