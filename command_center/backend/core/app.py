"""FastAPI application factory and lifespan management."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from command_center.backend.api import API_VERSION, create_router
from command_center.backend.core.config import ServiceConfiguration, seed_connections
from command_center.backend.models import init_database
from command_center.backend.services import (
    connection_manager,
    operation_monitor,
    reconciler,
)

# Global settings (set by create_app)
_api_key: Optional[str] = None
_config: Optional[ServiceConfiguration] = None


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Middleware for API key authentication."""

    # Paths that don't require authentication
    EXEMPT_PATHS = {
        "/docs",
        "/openapi.json",
        "/redoc",
        "/api/health",
    }

    async def dispatch(self, request: Request, call_next):
        if not _api_key:
            return await call_next(request)

        path = request.url.path
        if path in self.EXEMPT_PATHS or not path.startswith("/api/"):
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return JSONResponse(
                status_code=401,
                content={"detail": "Missing Authorization header"},
            )

        if not auth_header.startswith("Bearer "):
            return JSONResponse(
                status_code=401,
                content={"detail": "Invalid Authorization format. Use: Bearer <api-key>"},
            )

        token = auth_header[7:]  # Remove "Bearer " prefix
        if token != _api_key:
            return JSONResponse(
                status_code=401,
                content={"detail": "Invalid API key"},
            )

        return await call_next(request)


def configure_services(config: ServiceConfiguration):
    """Apply configuration to the global service instances."""
    connection_manager.command_timeout = config.command_timeout
    connection_manager.connect_timeout = config.connect_timeout
    if config.ssh_control_dir:
        connection_manager.control_dir = Path(config.ssh_control_dir).expanduser()
    reconciler.max_concurrency = config.sync_concurrency
    operation_monitor.poll_interval = config.poll_interval


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    config = _config or ServiceConfiguration.from_env()
    logging.info("🚀 Command Center starting...")

    init_database()
    configure_services(config)

    # Sessions do not survive a restart
    connection_manager.reset_connection_states()

    if config.connections_file:
        try:
            seed_connections(config.connections_file)
        except Exception as e:
            logging.error(f"❌ Failed to seed connections: {e}")

    logging.info(
        f"✅ Ready (sync concurrency: {config.sync_concurrency}, "
        f"poll interval: {config.poll_interval}s)"
    )

    yield

    logging.info("⏸️  Stopping operation monitors...")
    try:
        await operation_monitor.stop_all()
    except Exception as e:
        logging.error(f"❌ Failed to stop monitors: {e}")

    await connection_manager.disconnect_all()
    logging.info("👋 Command Center stopping...")


def create_app(api_key: str = None, config: ServiceConfiguration = None):
    """Create FastAPI application.

    Args:
        api_key: Optional API key for authentication. If provided,
                all /api/* routes require Authorization: Bearer <api_key> header.
                If None, read from COMMAND_CENTER_API_KEY.
        config: Service configuration. If None, read from the environment.

    Returns:
        Configured FastAPI application instance.
    """
    global _api_key, _config

    _config = config or ServiceConfiguration.from_env(api_key=api_key)
    _api_key = api_key or _config.api_key

    if _api_key:
        logging.info("🔐 API key authentication enabled")

    app = FastAPI(
        title="Command Center",
        description="Remote host connections and operation status tracking",
        version=API_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if _api_key:
        app.add_middleware(APIKeyMiddleware)

    app.include_router(create_router())

    @app.get("/")
    async def root_fallback():
        return {"message": "Command Center API", "api_docs": "/docs"}

    return app
