"""
Academic Lifecycle Worker - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Logging
- Database and Redis connections
- Lookup data
- Background job host (lifecycle, course reminder and attendance jobs)
- Health check and job debug endpoints
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from academic_worker import __version__
from academic_worker.core.clock import Clock
from academic_worker.core.config import settings
from academic_worker.core.database import async_session_maker, close_db, init_db
from academic_worker.core.logging_config import configure_logging
from academic_worker.core.redis import close_redis, get_redis, init_redis
from academic_worker.core.scheduler import JobHost
from academic_worker.modules.academic_requests.jobs import register_lifecycle_jobs
from academic_worker.modules.attendance.jobs import register_attendance_jobs
from academic_worker.modules.enrollments.jobs import register_enrollment_jobs
from academic_worker.modules.lookups import LookupProvider
from academic_worker.modules.payments.jobs import register_payment_jobs

logger = logging.getLogger(__name__)


def build_job_host(lookups: LookupProvider) -> JobHost:
    """Create the job host and register every background job on it."""
    host = JobHost(
        clock=Clock(settings.scheduler_timezone),
        timezone=settings.scheduler_timezone,
        retry_backoff=settings.job_retry_backoff_seconds,
    )
    register_lifecycle_jobs(host, lookups)
    register_enrollment_jobs(host, lookups)
    register_attendance_jobs(host, lookups)
    register_payment_jobs(host, lookups)
    return host


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events including:
    - Redis connection
    - Database connection and lookup data
    - Background job host
    """
    # Startup
    configure_logging(settings.log_level)
    logger.info(f"Starting academic lifecycle worker in {settings.python_env} mode...")

    # Initialize Redis
    try:
        await init_redis()
        logger.info("Redis connected")
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        if settings.is_production:
            raise

    # Initialize Database
    try:
        await init_db()
        logger.info("Database connected")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        if settings.is_production:
            raise

    lookups = LookupProvider()
    try:
        await lookups.get()
    except Exception as e:
        logger.error(f"Loading lookup data failed: {e}")
        if settings.is_production:
            raise

    # Initialize Background Jobs
    host = build_job_host(lookups)
    app.state.job_host = host
    app.state.lookups = lookups
    try:
        await host.start()
        logger.info("Background jobs started")
    except Exception as e:
        logger.error(f"Background jobs failed to start: {e}", exc_info=True)
        if settings.is_production:
            raise

    yield  # Application runs here

    # Shutdown
    logger.info("Shutting down academic lifecycle worker...")

    # Stop the jobs first (running batches finish)
    await host.stop()
    logger.info("Background jobs stopped")

    await close_redis()
    await close_db()
    logger.info("Cleanup complete")


app = FastAPI(
    title="Academic Lifecycle Worker",
    description="Scheduled lifecycle processing for student academic requests",
    version=__version__,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _job_host(request: Request) -> JobHost:
    host = getattr(request.app.state, "job_host", None)
    if host is None:
        raise HTTPException(status_code=503, detail="Job host not started")
    return host


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint - service welcome message."""
    return {
        "message": "Academic Lifecycle Worker",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check(request: Request) -> dict[str, str]:
    """Readiness check endpoint; ready once background jobs are running."""
    host = getattr(request.app.state, "job_host", None)
    if host is None or not host.running:
        raise HTTPException(status_code=503, detail="Background jobs not running")
    return {"status": "ready"}


@app.get("/debug/db", tags=["Debug"])
async def debug_db():
    """Test database connection."""
    try:
        async with async_session_maker() as session:
            result = await session.execute(text("SELECT 1"))
            return {"database": "connected", "result": result.scalar()}
    except Exception as e:
        return {"database": "error", "message": str(e)}


@app.get("/debug/redis", tags=["Debug"])
async def debug_redis():
    """Test Redis connection."""
    client = get_redis()
    try:
        if client:
            await client.ping()
            return {"redis": "connected"}
        return {"redis": "not initialized"}
    except Exception as e:
        return {"redis": "error", "message": str(e)}


# ============================================
# Background Job Debug Endpoints
# ============================================
# Manual control of background jobs. Jobs run automatically on schedule.


@app.get("/debug/jobs", tags=["Debug"])
async def list_jobs(request: Request):
    """
    List all registered background jobs and their status.

    Returns:
        List of job information including schedule, next run time and pause status.
    """
    return {"jobs": _job_host(request).list_registered_jobs()}


@app.post("/debug/jobs/{job_id}/trigger", tags=["Debug"])
async def trigger_job(job_id: str, request: Request):
    """
    Manually trigger a background job.

    Runs the job immediately for today, bypassing the normal schedule.

    Raises:
        HTTPException 400: If job_id is not found.
    """
    try:
        return await _job_host(request).trigger_job_manually(job_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@app.post("/debug/jobs/{job_id}/pause", tags=["Debug"])
async def pause_job_endpoint(job_id: str, request: Request):
    """
    Pause a scheduled background job.

    The job stays registered but its scheduled runs are skipped until resumed.
    """
    success = _job_host(request).pause_job(job_id)
    return {"job_id": job_id, "paused": success}


@app.post("/debug/jobs/{job_id}/resume", tags=["Debug"])
async def resume_job_endpoint(job_id: str, request: Request):
    """Resume a paused background job."""
    success = _job_host(request).resume_job(job_id)
    return {"job_id": job_id, "resumed": success}
