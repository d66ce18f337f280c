"""
api/main.py -- FastAPI application entry point for Matcha.

Cookie-session HTTP API plus the realtime WebSocket channel. The browser
frontend talks to it with credentials (cookies) included.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- credentials-enabled CORS for the frontend origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. log_requests          -- one access-log line per request
  5. session_chain         -- credential parse, CSRF enforcement / issuance

Starlette wraps middleware in reverse registration order: the LAST one added
is the OUTERMOST. Registration below therefore runs innermost-first.

Lifespan builds the engine, stores, photo service and mailer on app.state at
startup and disposes of the engine on shutdown. Settings and the credential
codec are immutable process-wide state and are attached at import time.
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException

from api.errors import envelope, error_response
from api.limiter import limiter
from api.middleware import session_chain
from api.models import HealthResponse
from api.realtime import router as realtime_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.photos import router as photos_router
from api.routes.v1.profile import router as profile_router
from auth.csrf import CSRF_HEADER
from auth.store import UserStore
from auth.tokens import get_codec
from core.config import get_settings
from core.db import create_db_engine
from core.errors import AppError, Internal
from core.mailer import Mailer
from photos.files import LocalFileStore
from photos.imaging import ImageTransformer
from photos.service import PhotoService
from photos.store import PhotoStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("matcha.api")

settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Engine first -- both stores share it, and create_all runs here.
      2. Stores, then the photo service that composes PhotoStore with the
         file store and image transformer.
      3. Mailer last -- only read by route handlers.
    """
    logger.info("Matcha API starting up")
    engine = create_db_engine(settings.database_url)
    app.state.engine = engine
    app.state.user_store = UserStore(engine)
    settings.uploads_dir.mkdir(parents=True, exist_ok=True)
    app.state.photo_service = PhotoService(
        store=PhotoStore(engine),
        files=LocalFileStore(settings.uploads_dir),
        transformer=ImageTransformer(),
        max_upload_bytes=settings.max_upload_bytes,
    )
    app.state.mailer = Mailer.from_settings(settings)
    logger.info("Storage initialized (uploads=%s)", settings.uploads_dir)

    yield

    engine.dispose()
    logger.info("Matcha API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Matcha API",
    description="Cookie-session authentication, profiles, photo slots and realtime channel.",
    version=VERSION,
    lifespan=lifespan,
)

app.state.settings = settings
app.state.codec = get_codec()
# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Middleware stack (registered innermost-first, see module docstring)
# ---------------------------------------------------------------------------

app.middleware("http")(session_chain)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Pattern: Interceptor. Logs method, path, status, latency and client for every request."""
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


app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", CSRF_HEADER],
    expose_headers=[CSRF_HEADER],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(profile_router, prefix="/api/v1", tags=["Profile"])
app.include_router(photos_router, prefix="/api/v1", tags=["Photos"])
app.include_router(realtime_router, tags=["Realtime"])

# Backing files are public by storage key (keys are unguessable).
# check_dir=False: the directory is created in lifespan, after import.
app.mount("/uploads", StaticFiles(directory=settings.uploads_dir, check_dir=False), name="uploads")


# ---------------------------------------------------------------------------
# Exception handlers -- every one answers with api.errors.envelope()
# ---------------------------------------------------------------------------


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Internal error on %s %s: %r", request.method, request.url.path, exc, exc_info=exc)
    return error_response(exc)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with Retry-After (seconds). slowapi puts the exceeded limit in exc.detail."""
    logger.warning("rate limit hit %s %s (%s)", request.method, request.url.path, exc.detail)
    retry_after = int(getattr(exc, "retry_after", 60))
    return envelope(
        429, "rate_limited", "Too many requests.", str(exc.detail), headers={"Retry-After": str(retry_after)}
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body, path or query params failed pydantic validation."""
    problems = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return envelope(422, "validation_error", "Request validation failed.", problems)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Starlette-level errors: unknown routes, wrong methods, missing static files."""
    return envelope(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=exc.headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort. The traceback goes to the server log, the client gets the generic Internal body."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(Internal())


# ---------------------------------------------------------------------------
# Health (no auth, no rate limit)
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness, current version and server time."""
    return HealthResponse(version=VERSION, timestamp=datetime.now(timezone.utc).isoformat())
