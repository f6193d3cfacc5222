"""Festival registration API main application module.

This module initializes the FastAPI application and configures
core middleware, routers, and startup/shutdown events.
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from festival.api import (
    events_router,
    health_router,
    payments_router,
    registrations_router,
    teams_router,
)
from festival.api.middleware import setup_middleware
from festival.application.notifications import get_notification_dispatcher, run_dispatch_worker
from festival.domain.exceptions import DomainError
from festival.infrastructure.config import settings
from festival.infrastructure.logging_config import configure_logging
from festival.infrastructure.notifier import get_notification_gateway

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown events.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup, cleanup happens after yield.
    """
    configure_logging()
    logger.info(
        "Starting festival API",
        version=settings.api_version,
        debug=settings.debug,
        storage_backend=settings.storage_backend,
    )

    if settings.storage_backend == "sql":
        from festival.infrastructure.database import init_db

        await init_db()
        logger.info("Database schema ready")

    # Retry undelivered notifications in the background
    dispatch_worker = asyncio.create_task(run_dispatch_worker())

    yield

    logger.info("Shutting down festival API")
    dispatch_worker.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await dispatch_worker
    await get_notification_dispatcher().dispatch_pending()
    await get_notification_gateway().close()
    if settings.storage_backend == "sql":
        from festival.infrastructure.database import close_db

        await close_db()


app = FastAPI(
    title="Festival Registration API",
    description="Registration, ticketing, merchandise and team formation for festival events",
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware (must be added before custom middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup custom middleware (request ID, API key auth, identity, error handling)
setup_middleware(app)

# Include routers
app.include_router(health_router, tags=["Health"])
app.include_router(events_router)
app.include_router(registrations_router)
app.include_router(payments_router)
app.include_router(teams_router)


# ============================================================================
# Custom Exception Handlers
# ============================================================================


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent format."""
    request_id = getattr(request.state, "request_id", None)

    detail = exc.detail
    if isinstance(detail, dict):
        error_code = detail.get("error_code", "ERROR")
        message = detail.get("message", str(detail))
        details = detail.get("details", {})
    else:
        error_code = "ERROR"
        message = str(detail)
        details = {}

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": details,
            "request_id": request_id,
        },
        headers=exc.headers,
    )


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render domain errors that escaped a service."""
    request_id = getattr(request.state, "request_id", None)
    logger.info(
        "Domain error in handler",
        path=request.url.path,
        error_code=exc.code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.code,
            "message": exc.message,
            "details": exc.details,
            "request_id": request_id,
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions with consistent format."""
    request_id = getattr(request.state, "request_id", None)

    logger.exception(
        "Unhandled exception in handler",
        path=request.url.path,
        method=request.method,
        error=str(exc),
    )

    return JSONResponse(
        status_code=500,
        content={
            "error_code": "INTERNAL_ERROR",
            "message": "An internal error occurred",
            "details": {},
            "request_id": request_id,
        },
    )
