# src/devlog_feed/main.py
"""Main entry point for the Devlog Feed service."""

from __future__ import annotations

import logging
import warnings

from fastapi import FastAPI
from fastapi.middleware.gzip import GZipMiddleware

from devlog_feed.api.v1 import feed_router, scoring_router, spammers_router
from devlog_feed.core.errors import InvalidSignalRange
from devlog_feed.core.settings import settings
from devlog_feed.services.event_worker import EventStreamWorker

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
# Clamped-signal warnings are reported through the py.warnings logger.
logging.captureWarnings(True)
warnings.simplefilter("always", InvalidSignalRange)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Curated feed of game-development devlog posts",
    version=settings.app_version,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(feed_router, prefix="/api/v1")
app.include_router(scoring_router, prefix="/api/v1")
app.include_router(spammers_router, prefix="/api/v1")

# Deployments that consume an upstream firehose attach a worker here before
# startup, e.g. ``app.state.event_worker = EventStreamWorker(source)``.
app.state.event_worker = None


@app.on_event("startup")
async def on_startup() -> None:
    worker: EventStreamWorker | None = app.state.event_worker
    if worker:
        await worker.start()
        logger.info("Event stream worker started")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    worker: EventStreamWorker | None = app.state.event_worker
    if worker:
        await worker.stop()
        logger.info("Event stream worker stopped after %d event(s)", worker.processed)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "feed": "/api/v1/feed",
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("devlog_feed.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
