# backend/codescout/main.py
from __future__ import annotations

"""
FastAPI application setup.

This module depends on:
- codescout.config.get_settings for configuration
- codescout.services.container.build_services for the shared cache,
  CLI gateway and tool runners
- codescout.api.api_router for route registration
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from codescout.api import api_router
from codescout.config import Settings, configure_logging, get_settings
from codescout.services.container import build_services


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Start the periodic sweep of expired cache entries; flush on exit.
        app.state.services.start()
        try:
            yield
        finally:
            await app.state.services.shutdown()

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = build_services(settings)

    # ---- CORS ----

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(o).rstrip("/") for o in settings.allowed_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---- Routes ----

    app.include_router(api_router, prefix="/api")

    # ---- Healthcheck ----

    @app.get("/health", tags=["health"])
    def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
