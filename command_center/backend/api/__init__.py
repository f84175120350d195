"""API router modules."""

from datetime import datetime

from fastapi import APIRouter

from .connections import router as connections_router
from .events import router as events_router
from .metrics import router as metrics_router
from .operations import router as operations_router
from .projects import router as projects_router

API_VERSION = "1.0.0"


def create_router() -> APIRouter:
    """Create the main API router with all sub-routers."""
    api_router = APIRouter(prefix="/api")

    api_router.include_router(connections_router, tags=["connections"])
    api_router.include_router(operations_router, tags=["operations"])
    api_router.include_router(projects_router, tags=["projects"])
    api_router.include_router(metrics_router, tags=["metrics"])
    api_router.include_router(events_router, tags=["events"])

    @api_router.get("/health")
    async def health():
        return {
            "status": "ok",
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }

    @api_router.get("/")
    async def root():
        return {
            "message": "Command Center",
            "version": API_VERSION,
            "status": "running",
        }

    return api_router
