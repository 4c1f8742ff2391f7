"""task-follower - mirrors spreadsheet tasks and nudges their owners on Telegram."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from task_follower import __version__
from task_follower.core.bootstrap import build_services
from task_follower.core.config import settings
from task_follower.core.db_client import close_connection
from task_follower.core.logging import configure_logfire, instrument_fastapi
from task_follower.core.schema import init_db
from task_follower.core.scheduler import SCHEDULED_JOBS, start_scheduler, stop_scheduler
from task_follower.interface.admin_router import router as admin_router
from task_follower.interface.webhook import router as webhook_router


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Configure logging first so validation logs are captured
    configure_logfire()

    try:
        services = build_services(settings)
    except ValueError as e:
        logger.error("startup_validation_failed", extra={"error": str(e)})
        print(f"\n❌ Startup validation failed: {e}\n", file=sys.stderr)  # noqa: T201
        sys.exit(1)
    app.state.services = services

    await init_db(db_path=settings.database_path)
    logger.info("Database initialized")

    start_scheduler(services.driver, services.tracker)
    yield
    stop_scheduler()
    await close_connection(db_path=settings.database_path)


app = FastAPI(
    title="task-follower",
    description="Spreadsheet task follow-up over Telegram",
    version=__version__,
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(webhook_router)
app.include_router(admin_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)


@app.get("/health/scheduler")
async def scheduler_health_check() -> JSONResponse:
    """Scheduler health check endpoint with job statuses."""
    services = getattr(app.state, "services", None)
    if services is None:
        return JSONResponse(content={"status": "starting"}, status_code=503)

    job_statuses = {job_name: services.tracker.get_job_status(job_name) for job_name in SCHEDULED_JOBS}
    dlq = services.tracker.get_dead_letter_queue()

    # Determine overall health
    has_failures = any(status["consecutive_failures"] > 0 for status in job_statuses.values())
    overall_status = "degraded" if has_failures else "healthy"
    if dlq:
        overall_status = "critical"

    return JSONResponse(
        content={
            "status": overall_status,
            "jobs": job_statuses,
            "driver": services.driver.get_health_status(),
            "directory_cache": services.directory.get_health_status(),
            "dead_letter_queue_size": len(dlq),
            "dead_letter_queue": dlq,
        },
        status_code=200 if overall_status == "healthy" else 503,
    )
