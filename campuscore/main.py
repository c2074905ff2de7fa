"""CampusCore Records API — FastAPI application entry point.

Features:
- Lifespan context manager: probes the DB on startup, disposes the pool on shutdown
- Structured exception handlers rendering every domain error as an error envelope
- Request/response logging middleware with request-ID tracing
- /health endpoint reporting DB connectivity
"""

from __future__ import annotations

import datetime
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from campuscore.config import get_settings
from campuscore.exceptions import RecordsError

# ---------------------------------------------------------------------------
# Logging setup  (must happen before routers are imported)
# ---------------------------------------------------------------------------

_settings = get_settings()
logging.basicConfig(
    level=getattr(logging, _settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Router imports
# ---------------------------------------------------------------------------

from campuscore.api import grades as _grades_module  # noqa: E402
from campuscore.api import me as _me_module  # noqa: E402
from campuscore.api import students as _students_module  # noqa: E402
from campuscore.database import check_db_connection, dispose_engine  # noqa: E402

# Register all ORM models with the declarative base (required for metadata)
import campuscore.models  # noqa: F401, E402

# Error category → HTTP status.  The categories come from campuscore.exceptions.
STATUS_BY_CATEGORY: dict[str, int] = {
    "invalid_input": status.HTTP_400_BAD_REQUEST,
    "missing_claim": status.HTTP_400_BAD_REQUEST,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "storage_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "server_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# ---------------------------------------------------------------------------
# Lifespan context manager
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle.

    Startup probes DB connectivity and logs the result (non-fatal).
    Shutdown disposes the SQLAlchemy connection pool.
    """
    logger.info("CampusCore Records API — starting up (v%s)", _settings.app_version)

    db_health = await check_db_connection()
    if db_health["status"] == "ok":
        logger.info("Database: OK")
    else:
        logger.warning("Database: DEGRADED — %s", db_health.get("detail", "unknown"))

    logger.info("Startup complete — serving requests")
    yield

    logger.info("CampusCore API — shutting down")
    try:
        await dispose_engine()
    except Exception as exc:
        logger.warning("Error during engine disposal: %s", exc)
    logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="CampusCore Records API",
    description=(
        "Role-based academic records: student profiles, per-subject grades, "
        "grade statistics and enrollment-aware deletion."
    ),
    version=_settings.app_version,
    debug=_settings.debug,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "health", "description": "System health and readiness checks."},
        {
            "name": "students",
            "description": "Student records (admin writes, admin/teacher reads) and deletion.",
        },
        {
            "name": "grades",
            "description": "Per-subject grade mutations and overviews for staff.",
        },
        {
            "name": "self-service",
            "description": "A student's own grades and academic summary.",
        },
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # restrict in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next: Any) -> Response:
    """Log every HTTP request with method, path, status, and duration.

    A short UUID-derived ``request_id`` is attached to each log line and
    returned as the ``X-Request-ID`` response header.
    """
    request_id = str(uuid.uuid4())[:8]
    t0 = time.monotonic()
    logger.info("[%s] → %s %s", request_id, request.method, request.url.path)

    try:
        response: Response = await call_next(request)
    except Exception as exc:
        elapsed = (time.monotonic() - t0) * 1000
        logger.error(
            "[%s] ✗ %s %s — unhandled after %.1f ms: %s",
            request_id,
            request.method,
            request.url.path,
            elapsed,
            exc,
        )
        raise

    elapsed = (time.monotonic() - t0) * 1000
    logger.info(
        "[%s] ← %s %s — %d (%.1f ms)",
        request_id,
        request.method,
        request.url.path,
        response.status_code,
        elapsed,
    )
    response.headers["X-Request-ID"] = request_id
    return response


# ---------------------------------------------------------------------------
# Structured exception handlers
# ---------------------------------------------------------------------------


def error_envelope(error: str, message: str, details: Any = None) -> dict[str, Any]:
    """Failure envelope shared by every handler."""
    content: dict[str, Any] = {"success": False, "error": error, "message": message}
    if details:
        content["details"] = details
    return content


@app.exception_handler(RecordsError)
async def records_error_handler(request: Request, exc: RecordsError) -> JSONResponse:
    """Map the domain error category to its HTTP status."""
    status_code = STATUS_BY_CATEGORY.get(exc.category, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
        # Driver detail stays in the logs.
        message = "An internal server error occurred"
    else:
        message = exc.message
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(error_envelope(exc.category, message, exc.details)),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """400 for malformed bodies, path ids and query parameters."""
    errors = [
        {"location": list(err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder(
            error_envelope("invalid_input", "Validation failed", {"errors": errors})
        ),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render FastAPI HTTPExceptions (e.g. 401 from the token check) as envelopes."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope("http_error", str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


# ---------------------------------------------------------------------------
# Core routes
# ---------------------------------------------------------------------------


@app.get("/", tags=["health"], summary="API root / service info")
async def root() -> dict[str, str]:
    """Return basic service metadata and navigation links."""
    return {
        "service": "CampusCore Records API",
        "version": _settings.app_version,
        "documentation": "/docs",
        "health": "/health",
        "openapi": "/openapi.json",
    }


@app.get("/health", tags=["health"], summary="System health check")
async def health_check() -> dict[str, Any]:
    """Return current system health including DB status."""
    db_health = await check_db_connection()
    return {
        "status": "ok" if db_health["status"] == "ok" else "degraded",
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "version": _settings.app_version,
        "database": db_health,
    }


# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------

app.include_router(_students_module.router)
app.include_router(_grades_module.router)
app.include_router(_me_module.router)


# ---------------------------------------------------------------------------
# Development entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "campuscore.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=_settings.log_level.lower(),
    )
