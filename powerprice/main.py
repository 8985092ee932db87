"""
Main application entry point for the power price alert service.
Initializes FastAPI app, database, scheduler, and starts the service.
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from powerprice import __version__
from powerprice.api.routes import router as api_router
from powerprice.config import settings
from powerprice.logging_config import get_logger, setup_logging
from powerprice.scheduler.simple_scheduler import PriceScheduler
from powerprice.services.price_alert_service import PriceAlertService

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for startup and shutdown procedures.
    """
    # Startup
    setup_logging()
    service = app.state.service or PriceAlertService.create()
    app.state.service = service
    await service.db.init_database()

    scheduler = PriceScheduler(service, clock=service.clock)
    app.state.scheduler = scheduler
    if app.state.run_scheduler:
        await scheduler.start()
    else:
        logger.info("Scheduler disabled")

    yield

    # Shutdown
    await scheduler.stop()
    await service.db.close()


def create_app(service: Optional[PriceAlertService] = None, run_scheduler: Optional[bool] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        service: Prebuilt service (tests); built from settings at startup when None
        run_scheduler: Start background jobs, defaults to settings.scheduler_enabled
    """
    app = FastAPI(
        title="Power Price Alerts",
        description="Hourly spot prices for Norwegian bidding zones with email price alerts",
        version=__version__,
        docs_url="/docs" if settings.api_debug else None,
        redoc_url="/redoc" if settings.api_debug else None,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.run_scheduler = settings.scheduler_enabled if run_scheduler is None else run_scheduler

    # Include API routes
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "powerprice.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
    )
