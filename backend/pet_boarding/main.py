"""
Pet Boarding API - Main Application Entry Point

A boarding reservation service demonstrating:
- Per-date capacity counters updated with single-statement conditional writes
- An order state machine guarded by compare-and-swap status updates
- Background reconciliation sweeps driving time-based transitions
- Structured logging with request correlation
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pet_boarding.api.middleware import RequestLoggingMiddleware
from pet_boarding.api.router import api_router
from pet_boarding.core.config import get_settings
from pet_boarding.core.exceptions import BoardingError
from pet_boarding.core.logging import get_logger, setup_logging
from pet_boarding.core.metrics import metrics_endpoint
from pet_boarding.db.session import Database
from pet_boarding.services import Services, build_services

settings = get_settings()
logger = get_logger(__name__)


async def _initialize(services: Services) -> None:
    """Connect to the store, then start the sweeps. Runs beside the listener."""
    try:
        await services.db.connect(create_tables=settings.DB_CREATE_TABLES)
    except Exception as e:
        logger.error("database_initialization_failed", error=str(e), error_type=type(e).__name__)
        return

    if settings.SCHEDULER_ENABLED:
        services.scheduler.start()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    services = build_services(Database.from_settings(settings), settings)
    app.state.services = services
    app.state.controller = services.controller

    # The listener does not wait for the database; requests await readiness
    init_task = asyncio.create_task(_initialize(services))

    yield

    init_task.cancel()
    await asyncio.gather(init_task, return_exceptions=True)
    await services.scheduler.stop()
    await services.db.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Pet boarding reservations with per-date capacity and order lifecycle management",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(BoardingError)
async def boarding_error_handler(request: Request, exc: BoardingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint for Docker and load balancers."""
    services: Optional[Services] = getattr(request.app.state, "services", None)
    database_ready = bool(services and services.db.is_ready)
    return {
        "status": "healthy" if database_ready else "starting",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "database": "ready" if database_ready else "initializing",
        "scheduler": "running" if services and services.scheduler.running else "stopped",
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
