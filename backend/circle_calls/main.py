"""
Circle Calls Backend - Main Application

This is the entry point for the FastAPI application.
It handles:
- REST API endpoints for group calls
- Database table creation on startup
- Redis connection when calls are stored in Redis
"""
from contextlib import asynccontextmanager
import logging
from datetime import datetime, UTC

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from circle_calls.api import router as api_router
from circle_calls.config.redis import get_redis, close_redis
from circle_calls.config.settings import settings
from circle_calls.models.database import init_db

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events using the modern FastAPI pattern.
    """
    # === STARTUP ===
    logger.info("Starting Circle Calls backend...")

    if settings.CALL_STORE_BACKEND == "redis":
        await get_redis()
        logger.info("Redis connected")
    else:
        await init_db()
        logger.info("Database tables created")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down...")
    await close_redis()


app = FastAPI(
    title="Circle Calls Backend",
    description="Group voice calls for circles: rosters, speaker queue and mute state",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"http://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include REST API routes
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Circle Calls",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "store": settings.CALL_STORE_BACKEND,
    }
