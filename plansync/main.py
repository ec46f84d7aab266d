"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from plansync.api.routes import plans, sync
from plansync.config import settings
from plansync.db.models import Base
from plansync.db.session import AsyncSessionLocal, engine
from plansync.ingest.cdr_client import CDRClient
from plansync.ingest.rate_limiter import RequestPacer
from plansync.ingest.retailers import default_registry
from plansync.sync.orchestrator import SyncOrchestrator
from plansync.sync.service import SyncService
from plansync.worker.scheduler import setup_scheduler

# Configure structured logging
from plansync.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting CDR plan sync service...")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    registry = default_registry()
    pacer = RequestPacer(min_interval=settings.detail_request_delay_seconds)
    client = CDRClient(pacer=pacer)
    orchestrator = SyncOrchestrator(client, registry, AsyncSessionLocal)
    service = SyncService(orchestrator)

    app.state.registry = registry
    app.state.cdr_client = client
    app.state.sync_service = service

    scheduler = None
    if settings.cron_sync_enabled:
        scheduler = setup_scheduler(service)
        scheduler.start()
        logger.info("Scheduler started")

    yield

    # Shutdown
    logger.info("Shutting down...")

    if scheduler:
        scheduler.shutdown()

    await service.shutdown()
    await client.close()
    await engine.dispose()

    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="BatteryIQ Plan Sync",
    description="Mirror retail electricity plans from the CDR energy endpoints",
    version="0.1.0",
    lifespan=lifespan,
)

# Add Prometheus instrumentation
instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_respect_env_var=True,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/metrics", "/health"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
)
instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])

# Include API routes
app.include_router(sync.router)
app.include_router(plans.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    uvicorn.run(
        "plansync.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
