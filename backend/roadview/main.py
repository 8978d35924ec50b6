"""
Road Inspection Survey Dashboard - FastAPI Backend

Main application entry point and configuration.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roadview.api.playback import router as playback_router
from roadview.api.session import router as session_router
from roadview.config import SOURCE_ENV
from roadview.services.errors import LoadError
from roadview.services.session import get_store


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Road Inspection Survey Backend")

    store = get_store()
    source = os.getenv(SOURCE_ENV)
    if store.snapshot is None and source:
        try:
            await store.load(source)
        except LoadError as e:
            logger.error(f"Initial session load from {source} failed: {e}")
            logger.info("Use POST /session/load to load a session")
    elif store.snapshot is None:
        logger.info("No session source configured, use POST /session/load")

    yield

    store.playback.pause()
    logger.info("Shutting down Road Inspection Survey Backend")


app = FastAPI(
    title="Road Inspection Survey Dashboard",
    description="""
    Backend API for road-inspection survey playback.

    ## Features
    - Load a survey session from a survey server or a local session folder
    - Merge GPS, detection metadata, images and system telemetry
    - Serve a synchronized, time-ordered timeline
    - Drive timeline playback at configurable speed

    ## Data Flow
    1. Load a session via POST /session/load
    2. Inspect cameras and statistics via GET /session
    3. Page through frames via GET /session/timeline
    4. Control playback via /playback
    """,
    version="0.1.0",
    lifespan=lifespan,
)


# CORS middleware (allow all origins for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(session_router)
app.include_router(playback_router)


@app.get("/")
async def root():
    """Root endpoint - basic health check."""
    return {
        "name": "Road Inspection Survey Dashboard",
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    store = get_store()
    snapshot = store.snapshot
    return {
        "status": "healthy",
        "source": store.source,
        "session": snapshot.session_name if snapshot else None,
        "frame_count": snapshot.frame_count if snapshot else 0,
        "loading": store.is_loading,
        "last_error": store.last_error,
    }
