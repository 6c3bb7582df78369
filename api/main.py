"""
api/main.py -- FastAPI application entry point for the admin panel backend.

Exposes authentication, user management, activity logs and statistics over
HTTP under /api/v1. Every response, success or failure, is a JSON envelope:

    {"success": true,  "message": "...", "data": {...}}
    {"success": false, "message": "...", "code": "SOME_CODE", ...extra}

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware    -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware -- enforces per-route rate limits from api.limiter
  3. log_requests      -- one access-log line per request with latency

Lifespan builds the stores and the session manager on startup and disposes
of the database engines on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.logs import router as logs_router
from api.routes.v1.stats import router as stats_router
from api.routes.v1.users import router as users_router
from audit.recorder import ActivityRecorder
from audit.store import ActivityLogStore
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings
from core.database import check_db_connected
from core.errors import AppError

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("adminpanel.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Stores first -- each creates its tables on the shared DATABASE_URL.
      2. Recorder second -- wraps the activity log store.
      3. Session manager last -- needs both the user store and the recorder.
    """
    # Startup
    logger.info("Admin panel API starting up")
    app.state.user_store = UserStore(_settings.database_url)
    app.state.log_store = ActivityLogStore(_settings.database_url)
    app.state.recorder = ActivityRecorder(app.state.log_store)
    app.state.sessions = SessionManager(app.state.user_store, app.state.recorder)
    logger.info(
        "Stores initialized (admin_exists=%s)",
        app.state.user_store.has_admin(),
    )

    yield

    # Shutdown
    app.state.user_store.close()
    app.state.log_store.close()
    logger.info("Admin panel API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Admin Panel API",
    description="Authentication, role-based access control and activity auditing for the admin dashboard.",
    version=API_VERSION,
    lifespan=lifespan,
    # Interactive docs only in development.
    docs_url="/docs" if _settings.debug else None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# Attach the shared limiter to app.state so SlowAPIMiddleware can locate it.
# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Wall-clock time around call_next gives the latency of the response.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(logs_router, prefix="/api/v1", tags=["Activity Logs"])
app.include_router(stats_router, prefix="/api/v1", tags=["Statistics"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same error envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a typed domain error with its own status, code and extra fields."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After tells clients how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    client = request.client.host if request.client else "unknown"
    logger.warning("Rate limit exceeded on %s from %s", request.url.path, client)
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            message="Too many requests. Please try again later.",
            code="RATE_LIMITED",
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 VALIDATION_ERROR when the body or query params fail schema validation."""
    errors = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path"))
        errors.append(f"{loc}: {err.get('msg', '')}" if loc else err.get("msg", ""))
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(message="Validation failed", code="VALIDATION_ERROR", errors=errors).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return the error envelope for FastAPI/Starlette HTTP exceptions (404 on unknown routes, 405, ...)."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=str(exc.detail), code=f"HTTP_{exc.status_code}").model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    The client receives a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(message="Internal server error.", code="INTERNAL_ERROR").model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied -- health
# checks from load balancers and monitoring systems must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, current version and database reachability."""
    db_ok = check_db_connected(request.app.state.user_store.engine)
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=API_VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "unreachable"},
    )
