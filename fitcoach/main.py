"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order
- Can create multiple app instances if needed (e.g., for testing)

For local development:
    STORE_MOCK_MODE=true uvicorn fitcoach.main:app --reload

For production:
    gunicorn fitcoach.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import health, plans, programs, schedule
from .config.settings import get_settings
from .core.errors import (
    AccessDenied,
    InvalidCellValue,
    InvalidTransition,
    InvariantViolation,
    PartialAggregationFailure,
    PersistenceFailure,
    RecordNotFound,
    UnknownCellAddress,
    WriteUnauthorized,
)
from .infrastructure.snowflake import SnowflakeConnectionError

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Runs on startup and shutdown. FastAPI calls this automatically when
    the application starts/stops.
    """
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info(
        "FitCoach API starting",
        extra={
            "version": settings.api_version,
            "mock_mode": settings.store_mock_mode,
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )
        # Keep serving so /health/ready can report what's missing

    yield

    logger.info("FitCoach API shutting down")


def _error_response(request: Request, status_code: int, exc: Exception, level: int) -> JSONResponse:
    logger.log(
        level,
        "Request failed",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error": str(exc),
        }
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    """Map the core error taxonomy onto HTTP status codes."""

    @app.exception_handler(WriteUnauthorized)
    @app.exception_handler(AccessDenied)
    async def forbidden_handler(request: Request, exc: Exception):
        return _error_response(request, status.HTTP_403_FORBIDDEN, exc, logging.WARNING)

    @app.exception_handler(RecordNotFound)
    async def not_found_handler(request: Request, exc: RecordNotFound):
        return _error_response(request, status.HTTP_404_NOT_FOUND, exc, logging.INFO)

    @app.exception_handler(InvalidTransition)
    async def conflict_handler(request: Request, exc: InvalidTransition):
        return _error_response(request, status.HTTP_409_CONFLICT, exc, logging.INFO)

    @app.exception_handler(InvalidCellValue)
    @app.exception_handler(UnknownCellAddress)
    @app.exception_handler(ValueError)
    async def invalid_input_handler(request: Request, exc: Exception):
        return _error_response(request, 422, exc, logging.INFO)

    @app.exception_handler(PersistenceFailure)
    @app.exception_handler(PartialAggregationFailure)
    @app.exception_handler(SnowflakeConnectionError)
    async def unavailable_handler(request: Request, exc: Exception):
        return _error_response(
            request, status.HTTP_503_SERVICE_UNAVAILABLE, exc, logging.ERROR
        )

    @app.exception_handler(InvariantViolation)
    async def invariant_handler(request: Request, exc: InvariantViolation):
        return _error_response(
            request, status.HTTP_500_INTERNAL_SERVER_ERROR, exc, logging.ERROR
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Catch-all exception handler.

        In production, this prevents stack traces from leaking to clients.
        We log the full error server-side but return a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error. Please contact support if this persists."
            }
        )


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    This function is called once at startup (in production) or
    multiple times (in tests with different configurations).
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Coach/client training platform backend.

        ## Features

        - Training programs as an exercise x column x week matrix
        - Coach prescriptions and client logs side by side, with per-column write rules
        - One unified calendar of strength and cardio sessions
        - Check-in calendar with urgency flags
        - Date-versioned macro and diet plans

        ## Authentication

        All `/api/v1` endpoints require an API key in the `X-API-Key` header,
        plus `X-Actor-Role` (`coach` or `client`) and `X-Actor-Id`.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    # Configure allowed origins via CORS_ORIGINS environment variable
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        programs.router,
        prefix="/api/v1",
        tags=["Programs"],
    )

    app.include_router(
        schedule.router,
        prefix="/api/v1",
        tags=["Schedule"],
    )

    app.include_router(
        plans.router,
        prefix="/api/v1",
        tags=["Plans"],
    )

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - redirect to docs."""
        return {
            "message": "FitCoach API",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    register_exception_handlers(app)

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# Create the application instance
# This is what uvicorn/gunicorn will import
app = create_app()


# For debugging/development
if __name__ == "__main__":
    import uvicorn

    # Get settings to determine log level
    settings = get_settings()

    uvicorn.run(
        "fitcoach.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
