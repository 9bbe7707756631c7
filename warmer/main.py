"""Warmer FastAPI application.

Creates the warmer service, wires routes, and exposes health, Prometheus
metrics and the static landing page.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles

from warmer.api.routes import router
from warmer.core.config import Settings, load_settings
from warmer.core.logging import setup_logging
from warmer.metrics.prometheus import metrics_router
from warmer.services.discovery_client import CloudRunDiscoveryClient, ServiceLister
from warmer.services.warm import Warmer, build_probe_client

log = logging.getLogger("Warmer")

STATIC_DIR = Path(__file__).parent / "static"


def create_app(settings: Optional[Settings] = None, lister: Optional[ServiceLister] = None) -> FastAPI:
    """Build the application. ``lister`` replaces Cloud Run discovery when given."""
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan.

        Opens the discovery and probe HTTP pools and builds the discovery client and
        Warmer, which live for the duration of the app.
        """
        async with httpx.AsyncClient(timeout=settings.request_timeout_s) as client, \
                build_probe_client(settings) as probes:
            dc = lister or CloudRunDiscoveryClient.from_settings(client, settings)
            app.state.warmer = Warmer(dc, probes, settings)
            yield

    app = FastAPI(title="mklv.tech warmer", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings

    @app.get("/health", response_class=PlainTextResponse)
    async def health():
        """Liveness endpoint returning a fixed OK body."""
        return "OK"

    app.include_router(metrics_router)
    app.include_router(router, prefix="/api", tags=["warm"])

    # Mounted last: "/" would otherwise shadow the routes above.
    app.mount("/", StaticFiles(directory=STATIC_DIR, html=True), name="static")
    return app


def run() -> None:
    """Process entry point: serve the app on the configured port."""
    setup_logging()
    settings = load_settings()
    app = create_app(settings)
    log.info("Starting mklv.tech service on port %d", settings.port)
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)
