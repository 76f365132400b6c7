"""FastAPI application: lifespan-managed runtime plus status and stream routes."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI

from .config import Settings
from .logging_config import setup_logging
from .realtime import create_stream_router
from .runtime import Runtime

logger = logging.getLogger(__name__)


def create_status_router(runtime: Runtime) -> APIRouter:
    """Read-only health plus the manual activation overrides."""
    router = APIRouter(prefix="/api", tags=["status"])

    @router.get("/status")
    async def get_status() -> dict:
        return runtime.status()

    @router.get("/activation")
    async def get_activation() -> dict:
        return runtime.controller.status()

    @router.post("/activation/activate")
    async def activate() -> dict:
        runtime.controller.force_activate()
        return runtime.controller.status()

    @router.post("/activation/deactivate")
    async def deactivate() -> dict:
        runtime.controller.force_deactivate()
        return runtime.controller.status()

    return router


def create_app(settings: Settings | None = None, runtime: Runtime | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level)
    runtime = runtime or Runtime(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await runtime.start()
        try:
            yield
        finally:
            await runtime.stop()

    app = FastAPI(title="Stockwatch", lifespan=lifespan)
    app.state.runtime = runtime
    app.include_router(create_status_router(runtime))
    app.include_router(create_stream_router(runtime.hub))

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app
