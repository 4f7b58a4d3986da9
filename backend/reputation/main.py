"""
Reputation Engine API - Main Application Entry Point

This module initializes the FastAPI application with:
- Database connection and schema initialization
- Trust score recalculation dispatcher (app.state.dispatcher)
- Background scheduler for the periodic batch recalculation
- Domain error → HTTP response mapping
- Prometheus metrics and API router registration

Architecture:
    FastAPI App
    ├── Lifespan Management (startup/shutdown)
    ├── Prometheus Middleware (/metrics)
    └── API Router
        ├── /jobs - Job lifecycle and milestones
        ├── /reviews - Reviews, flags, helpful votes, moderation
        └── /trust - Trust scores and badges
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from reputation.api import api_router
from reputation.config import get_settings
from reputation.database import async_session, init_db
from reputation.errors import ReputationError
from reputation.middleware.metrics import setup_metrics
from reputation.scheduler import start_scheduler, stop_scheduler
from reputation.services.dispatcher import build_dispatcher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle events.

    Startup:
        1. Initialize database tables
        2. Build the recalculation dispatcher
        3. Start background scheduler

    Shutdown:
        1. Stop the scheduler
        2. Wait for in-flight recalculations

    Yields:
        Control to the application during its runtime
    """
    await init_db()
    app.state.dispatcher = build_dispatcher(get_settings(), async_session)
    start_scheduler()
    yield
    stop_scheduler()
    await app.state.dispatcher.drain()


app = FastAPI(
    title="Reputation Engine API",
    description="Job lifecycle, review moderation and trust scores for a services marketplace",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(ReputationError)
async def reputation_error_handler(request: Request, exc: ReputationError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


setup_metrics(app)
app.include_router(api_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
