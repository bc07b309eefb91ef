"""
Patio Sun Exposure API - Main FastAPI Application
"""
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sunexposure.config import get_settings
from sunexposure.database import check_db_connection
from sunexposure.errors import InvalidArgumentError, NotFoundError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()


async def _database_ready() -> bool:
    """In-memory mode has no database to check."""
    if settings.use_in_memory_store:
        return True
    return await check_db_connection()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup/shutdown events.
    """
    # Startup
    logger.info("Starting Patio Sun Exposure API...")
    logger.info(f"Environment: debug={settings.debug}, in_memory_store={settings.use_in_memory_store}")

    # Check database connection on startup
    if await _database_ready():
        logger.info("Database connection verified")
    else:
        logger.warning("Database connection failed - service may not work correctly")

    yield

    # Shutdown
    logger.info("Shutting down Patio Sun Exposure API...")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Sun exposure, timelines and sun windows for outdoor patios",
    version="0.1.0",
    lifespan=lifespan,
)

# =============================================================================
# CORS Middleware (must be added early, before routes)
# =============================================================================
# Allowed origins are configured in sunexposure/config.py via CORS_ORIGINS env var.

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["*"],
)

# =============================================================================
# Exception Handlers (with CORS headers for cross-origin error responses)
# =============================================================================


def _get_cors_headers(request: Request) -> dict[str, str]:
    """Get CORS headers based on request origin."""
    origin = request.headers.get("origin", "")
    if origin in settings.cors_origins:
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
            "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
            "Access-Control-Allow-Headers": "*",
        }
    return {}


def _error_response(request: Request, status_code: int, error: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "status_code": status_code,
        },
        headers=_get_cors_headers(request),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent JSON response and CORS headers."""
    return _error_response(request, exc.status_code, exc.detail)


@app.exception_handler(InvalidArgumentError)
async def invalid_argument_handler(request: Request, exc: InvalidArgumentError) -> JSONResponse:
    """Rejected input: out-of-range coordinates, bad time ranges, oversized batches."""
    return _error_response(request, status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error_response(request, status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions with CORS headers."""
    logger.exception(f"Unexpected error: {exc}")
    return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# =============================================================================
# Health Check Endpoints
# =============================================================================


@app.get("/health", tags=["Health"])
async def health() -> dict[str, str]:
    """
    Basic liveness check endpoint.

    Returns 200 OK if the service is running.
    """
    return {"status": "ok"}


@app.get("/health/ready", tags=["Health"])
async def health_ready() -> dict[str, Any]:
    """
    Readiness check that verifies database connectivity.

    Returns 200 if the service is ready to handle requests.
    Returns 503 if the database is not accessible.
    """
    if not await _database_ready():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection failed",
        )

    return {
        "status": "ready",
        "database": "in-memory" if settings.use_in_memory_store else "connected",
    }


# =============================================================================
# API Info
# =============================================================================


@app.get("/", tags=["Info"])
async def root() -> dict[str, str]:
    """API root - returns basic info."""
    return {
        "name": settings.app_name,
        "version": "0.1.0",
        "docs": "/docs",
    }


# =============================================================================
# API Routes
# =============================================================================

from sunexposure.api import (  # noqa: E402
    buildings_router,
    cache_router,
    precomputation_router,
    solar_router,
    sun_exposure_router,
    timeline_router,
)

app.include_router(sun_exposure_router)
app.include_router(timeline_router)
app.include_router(solar_router)
app.include_router(precomputation_router)
app.include_router(cache_router)
app.include_router(buildings_router)  # Admin height overrides
