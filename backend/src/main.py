"""
FastAPI application entry point for the notification backend.

This module initializes the FastAPI application with:
- Application state (RealtimeHub, OverdueTaskScheduler)
- CORS middleware for the web frontend
- Rate limiting for push subscription endpoints
- Exception handlers for consistent error responses
- Logging configuration

Environment Variables:
    WNP_DB_URL: Database connection URL
    WNP_ENV: Environment (production/development, default: development)
    WNP_LOG_LEVEL: Log level (DEBUG/INFO/WARNING/ERROR/CRITICAL, default: INFO)
    WNP_OVERDUE_SCHEDULER_ENABLED: Start the daily overdue scan (default: true)
    VAPID_PUBLIC_KEY / VAPID_PRIVATE_KEY / VAPID_SUBJECT: Web Push credentials
"""

from contextlib import asynccontextmanager
from typing import Dict, Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

from backend.src.config.settings import get_settings
from backend.src.services.exceptions import (
    ServiceError,
    NotFoundError,
    ConflictError,
    ValidationError as ServiceValidationError,
)
from backend.src.services.overdue_scheduler import OverdueTaskScheduler
from backend.src.utils.logging_config import init_logging, get_logger
from backend.src.utils.realtime import RealtimeHub


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Handles startup and shutdown events:
    - Startup: Create the realtime hub and scheduler, start the daily scan
    - Shutdown: Stop the scheduler, close open streams

    Args:
        app: FastAPI application instance

    Yields:
        Control to the application
    """
    # Startup
    logger = get_logger("api")
    logger.info("Starting notification backend")

    settings = get_settings()
    if not settings.vapid_configured:
        logger.warning("VAPID keys not configured, push delivery disabled")

    app.state.realtime_hub = RealtimeHub(queue_size=settings.realtime_queue_size)
    app.state.overdue_scheduler = OverdueTaskScheduler(
        settings=settings,
        realtime_hub=app.state.realtime_hub,
    )
    if settings.overdue_scheduler_enabled:
        await app.state.overdue_scheduler.start()
    else:
        logger.info("Overdue task scheduler disabled")

    logger.info("Notification backend started successfully")

    yield

    # Shutdown
    logger.info("Shutting down notification backend")
    await app.state.overdue_scheduler.stop()
    app.state.realtime_hub.close_all()


# Initialize logging before creating app
init_logging()

# Create FastAPI application
app = FastAPI(
    title="What's Next Please Notifications API",
    description="Notification fan-out and delivery backend: in-app feed, "
                "Web Push, Server-Sent Events and the overdue task scan.",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# Configure CORS middleware for the web frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().app_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers


@app.exception_handler(ValidationError)
async def validation_exception_handler(
    request: Request, exc: ValidationError
) -> JSONResponse:
    """
    Handle Pydantic validation errors.

    Args:
        request: HTTP request
        exc: Pydantic ValidationError

    Returns:
        JSON response with validation error details
    """
    logger = get_logger("api")
    logger.warning(
        "Validation error",
        extra={
            "path": request.url.path,
            "method": request.method,
            "errors": exc.errors(),
        }
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation Error",
            "message": "Request validation failed",
            "details": exc.errors(include_url=False),
        }
    )


@app.exception_handler(ServiceError)
async def service_exception_handler(
    request: Request, exc: ServiceError
) -> JSONResponse:
    """Map service errors that escaped an endpoint to HTTP status codes."""
    if isinstance(exc, NotFoundError):
        status_code, error = status.HTTP_404_NOT_FOUND, "Not Found"
    elif isinstance(exc, ConflictError):
        status_code, error = status.HTTP_409_CONFLICT, "Conflict"
    elif isinstance(exc, ServiceValidationError):
        status_code, error = status.HTTP_400_BAD_REQUEST, "Bad Request"
    else:
        status_code, error = status.HTTP_500_INTERNAL_SERVER_ERROR, "Service Error"

    get_logger("api").warning(
        "Service error",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error": str(exc),
        }
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": str(exc)},
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    """
    Handle SQLAlchemy database errors.

    Args:
        request: HTTP request
        exc: SQLAlchemy exception

    Returns:
        JSON response with database error message
    """
    logger = get_logger("db")
    logger.error(
        "Database error",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error": str(exc),
        }
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Database Error",
            "message": "An error occurred while accessing the database. "
                      "Please try again later.",
        }
    )


@app.exception_handler(Exception)
async def generic_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Handle all other unhandled exceptions.

    Args:
        request: HTTP request
        exc: Unhandled exception

    Returns:
        JSON response with generic error message
    """
    logger = get_logger("api")
    logger.error(
        "Unhandled exception",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error": str(exc),
        },
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred. Please try again later.",
        }
    )


# Health check endpoint


@app.get("/health", tags=["Health"])
async def health_check(request: Request) -> Dict[str, Any]:
    """
    Health check endpoint.

    Returns:
        Health status, live stream count and scheduler state
    """
    hub = getattr(request.app.state, "realtime_hub", None)
    scheduler = getattr(request.app.state, "overdue_scheduler", None)
    return {
        "status": "healthy",
        "service": "wnp-notifications",
        "version": "1.0.0",
        "realtime_connections": hub.connection_count if hub else 0,
        "overdue_scan_in_progress": scheduler.is_processing if scheduler else False,
    }


# API routers
from backend.src.api import notifications

app.state.limiter = notifications.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.include_router(notifications.router, prefix="/api")


# Root endpoint


@app.get("/", tags=["Root"])
async def root() -> Dict[str, str]:
    """
    Root endpoint with API information.

    Returns:
        API metadata and documentation links
    """
    return {
        "message": "What's Next Please Notifications API",
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc",
        "openapi": "/openapi.json",
    }
