"""
FastAPI application for the ingestion worker.

This module provides:
1. Health and stats endpoints backed by the stored RunState
2. A manual trigger endpoint
3. The lifespan that wires the pipeline and starts the timer loop

Endpoints:
- GET /: API info
- GET /health: Health status (never_run, healthy, stale)
- GET /stats: Stats of the last run
- GET /categories: The fixed category set
- POST /trigger: Run the pipeline now (409 if a run is in progress)

Usage:
    # Run with uvicorn
    uvicorn pulse_worker.api:app

    # Or use the main.py entrypoint
    python -m pulse_worker.main serve
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

import httpx
import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from pulse_worker.config import get_settings
from pulse_worker.db import close_db_pool
from pulse_worker.errors import RunInProgressError, RunTimeout
from pulse_worker.graph.orchestrator import build_default_deps
from pulse_worker.models import CATEGORIES, FALLBACK_CATEGORY
from pulse_worker.run_state import RunStats
from pulse_worker.scheduler import HealthReport, Scheduler

logger = structlog.get_logger()

API_VERSION = "1.0.0"


# ========================================
# PYDANTIC MODELS
# Response schemas
# ========================================


class HealthResponse(HealthReport):
    """Health check response."""

    timestamp: datetime = Field(description="Current server time")
    version: str = Field(default=API_VERSION)


class StatsResponse(BaseModel):
    """Stats of the last completed run."""

    stats: RunStats | None = Field(description="Last run statistics, null if never run")
    last_run_at: datetime | None = Field(description="When the last run completed")
    total_saved: int = Field(description="Articles saved across all runs")
    timestamp: datetime = Field(description="Current server time")


class TriggerResponse(BaseModel):
    """Response after a manual run."""

    success: bool
    message: str
    stats: RunStats | None = None
    timestamp: datetime


class CategoriesResponse(BaseModel):
    categories: list[str] = Field(description="Categories the AI chooses from")
    fallback: str = Field(description="Category used when enrichment fails")


# ========================================
# APP FACTORY
# ========================================


def create_app(scheduler: Scheduler | None = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        scheduler: Pre-built scheduler (tests). When None, the lifespan
            wires the production pipeline from settings and starts the
            timer loop.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if scheduler is not None:
            yield
            return

        settings = get_settings()
        logger.info("Starting API server")

        async with httpx.AsyncClient(follow_redirects=True) as http_client:
            deps = await build_default_deps(settings, http_client)
            app.state.scheduler = Scheduler(deps, interval=timedelta(minutes=settings.schedule_interval_minutes))
            app.state.scheduler.start()
            try:
                yield
            finally:
                logger.info("Shutting down API server")
                await app.state.scheduler.stop()
                await close_db_pool()

    app = FastAPI(
        title="Pulse News Worker",
        description="Scheduled news ingestion and AI enrichment",
        version=API_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    if scheduler is not None:
        app.state.scheduler = scheduler

    # ========================================
    # ENDPOINTS
    # ========================================

    @app.get("/", tags=["Health"])
    async def root():
        """Basic worker info and the list of endpoints."""
        return {
            "name": "Pulse News Worker",
            "version": API_VERSION,
            "endpoints": {
                "GET /health": "Health check",
                "GET /stats": "Processing statistics",
                "POST /trigger": "Manual execution",
            },
        }

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request):
        """
        Health derived from the stored RunState.

        Read-only: never starts a run or modifies state.
        """
        try:
            report = await request.app.state.scheduler.health()
        except Exception as e:
            logger.error("Failed to read run state", error=str(e), error_type=type(e).__name__)
            raise HTTPException(status_code=503, detail="Run state unavailable")

        return HealthResponse(**report.model_dump(), timestamp=datetime.now(UTC))

    @app.get("/stats", response_model=StatsResponse, tags=["Health"])
    async def get_stats(request: Request):
        try:
            state = await request.app.state.scheduler.state()
        except Exception as e:
            logger.error("Failed to read run state", error=str(e), error_type=type(e).__name__)
            raise HTTPException(status_code=503, detail="Run state unavailable")

        return StatsResponse(
            stats=state.last_stats,
            last_run_at=state.last_run_at,
            total_saved=state.total_saved,
            timestamp=datetime.now(UTC),
        )

    @app.get("/categories", response_model=CategoriesResponse, tags=["News"])
    async def get_categories():
        return CategoriesResponse(categories=CATEGORIES, fallback=FALLBACK_CATEGORY)

    @app.post("/trigger", response_model=TriggerResponse, tags=["Pipeline"])
    async def trigger_run(request: Request):
        """
        Run the pipeline now and wait for it to finish.

        Returns:
            409 if a run is already in progress
            504 if the run exceeded its time budget
            500 on any other failure
        """
        logger.info("Pipeline run triggered via API")

        try:
            stats = await request.app.state.scheduler.trigger()
        except RunInProgressError:
            raise HTTPException(status_code=409, detail="A run is already in progress")
        except RunTimeout as e:
            raise HTTPException(status_code=504, detail=str(e))
        except Exception as e:
            logger.error("Pipeline run failed", error=str(e), error_type=type(e).__name__)
            raise HTTPException(status_code=500, detail=f"Pipeline failed: {e}")

        return TriggerResponse(
            success=True,
            message=f"Worker executed successfully. Saved {stats.saved_articles} articles.",
            stats=stats,
            timestamp=datetime.now(UTC),
        )

    return app


app = create_app()
