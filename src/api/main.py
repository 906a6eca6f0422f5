"""FastAPI application for the FleetOps bulk order API.

Provides the main application instance with routers and exception
handlers configured.
"""

import logging
import os
import sys
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version

from fastapi import FastAPI, Request

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
# Ensure our application loggers are captured
logging.getLogger("src").setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.routes import bulk_orders
from src.api.schemas import HealthResponse
from src.db.connection import init_db
from src.errors import BulkUploadError

logger = logging.getLogger(__name__)

# Module-level state for health endpoint
_startup_time: float = 0.0


def _parse_allowed_origins() -> list[str]:
    """Parse comma-separated CORS allowlist from ALLOWED_ORIGINS env var."""
    raw = os.environ.get("ALLOWED_ORIGINS", "").strip()
    if not raw:
        return []
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _package_version() -> str:
    try:
        return _pkg_version("fleetops-bulk")
    except PackageNotFoundError:
        return "unknown"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Async lifespan: create tables on startup."""
    global _startup_time

    _startup_time = _time.time()
    init_db()
    logger.info("FleetOps bulk API started (version %s)", _package_version())

    yield

    logger.info("FleetOps bulk API shutting down")


app = FastAPI(
    title="FleetOps Bulk Orders API",
    description="Idempotent bulk order ingestion from spreadsheets",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS allowlist is env-driven. If unset, CORS is disabled (same-origin only).
allowed_origins = _parse_allowed_origins()
if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Uploader-Id"],
    )


@app.exception_handler(BulkUploadError)
async def bulk_upload_error_handler(
    request: Request, exc: BulkUploadError
) -> JSONResponse:
    """Handle BulkUploadError exceptions with consistent format.

    Args:
        request: The incoming request.
        exc: The BulkUploadError exception.

    Returns:
        JSONResponse with error details.
    """
    status_code = 500 if exc.code.startswith("E-4") else 400
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": exc.code,
            "message": exc.message,
            "remediation": exc.remediation,
            "details": exc.details if exc.details else None,
        },
    )


# Include routers
app.include_router(bulk_orders.router, prefix="/api/v1")


@app.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Liveness check.

    Returns:
        Status, package version and uptime in seconds.
    """
    uptime = int(_time.time() - _startup_time) if _startup_time else 0
    return HealthResponse(status="healthy", version=_package_version(), uptime_seconds=uptime)


@app.get("/api")
def api_root() -> dict:
    """API root with links to docs.

    Returns:
        Dictionary with API info and links.
    """
    return {
        "name": "FleetOps Bulk Orders API",
        "version": "0.1.0",
        "docs": "/docs",
        "redoc": "/redoc",
    }
