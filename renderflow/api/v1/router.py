"""Aggregate the render service routers under the /render base path."""

from fastapi import APIRouter
from renderflow.api.v1.health import router as health_router
from renderflow.api.v1.jobs import router as jobs_router
from renderflow.api.v1.upload import router as upload_router

render_router = APIRouter(prefix="/render")
render_router.include_router(health_router, tags=["health"])
render_router.include_router(upload_router, tags=["upload"])
render_router.include_router(jobs_router, tags=["jobs"])
