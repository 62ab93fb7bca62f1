"""
api/main.py -- FastAPI application entry point for UserGate.

Run with:  python main.py serve
           uvicorn api.main:app --reload

Middleware stack (outermost to innermost, i.e. reverse registration order):
  1. CORSMiddleware         -- adds CORS headers for allowed browser origins
  2. TrustedHostMiddleware  -- rejects requests with unexpected Host headers
  3. log_requests           -- one log line per request with latency
  4. SlowAPIMiddleware      -- enforces per-route rate limits from api.limiter
  5. SessionMiddleware      -- signed session cookie <-> Session handle

Lifespan creates the user store, the Redis client and the services, and
tears them down symmetrically on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.users import router as users_router
from auth.errors import ApiError
from auth.service import AuthService
from auth.sessions import RedisSessionStore, SessionMiddleware
from core.config import get_settings
from users.service import UserService
from users.store import UserStore

VERSION = "0.1.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("usergate.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. User store -- creates the schema if missing.
      2. Redis client + session store -- SessionMiddleware reads
         app.state.session_store on every request.
      3. Services -- depend on both stores.
    """
    logger.info("UserGate API starting up")
    app.state.started_at = time.monotonic()

    app.state.user_store = UserStore(
        _settings.database_url,
        pool_size=_settings.database_pool_size,
        max_overflow=_settings.database_max_overflow,
        pool_timeout=_settings.database_pool_timeout,
        pool_recycle=_settings.database_pool_recycle,
    )
    logger.info("User store initialized")

    app.state.redis = redis.Redis.from_url(
        _settings.redis_url,
        socket_timeout=_settings.redis_socket_timeout,
        socket_connect_timeout=_settings.redis_connect_timeout,
        health_check_interval=30,
    )
    app.state.session_store = RedisSessionStore(
        app.state.redis,
        key_prefix=_settings.session_key_prefix,
        ttl_seconds=_settings.session_max_age_seconds,
    )
    if not app.state.session_store.ping():
        logger.warning("Session store unreachable at startup -- logins will fail until it recovers")
    else:
        logger.info("Session store connected")

    app.state.user_service = UserService(app.state.user_store)
    app.state.auth_service = AuthService(app.state.user_store, on_rehash=app.state.user_service.rehash_password)

    yield

    app.state.redis.close()
    app.state.user_store.close()
    logger.info("UserGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="UserGate API",
    description="User management with session-based authentication and role-based access control.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette wraps middleware in reverse registration order: the last
# add_middleware() call is the outermost layer. SessionMiddleware is added
# first so it sits closest to the routes.
# ---------------------------------------------------------------------------

app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    cookie_name=_settings.session_cookie_name,
    max_age=_settings.session_max_age_seconds,
    same_site=_settings.session_cookie_same_site,
    https_only=_settings.session_cookie_secure,
    domain=_settings.session_cookie_domain,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


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


app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(users_router, tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler returns the same ErrorResponse envelope
# ({"success": false, "message": ..., "timestamp": ...}) so clients branch on
# the status code, never on the body shape.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, message: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=ErrorResponse(message=message).model_dump())
    response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Render domain errors. 5xx messages are logged, never sent to the client."""
    if exc.status_code >= 500:
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc.message)
        return _error_response(exc.status_code, "Internal server error")
    return _error_response(exc.status_code, exc.message)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 when a rate limit is exceeded.

    Retry-After tells clients how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "Too many requests")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 naming the first invalid field."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "path", "query"))
        message = f"{field}: {first.get('msg', 'Invalid value')}" if field else first.get("msg", "Invalid input")
    else:
        message = "Invalid input"
    return _error_response(400, f"Validation error: {message}")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return the envelope for FastAPI/Starlette HTTP exceptions (404 on unknown paths etc.)."""
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the server log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "Internal server error")


# ---------------------------------------------------------------------------
# Health and root
#
# Defined directly in main.py so they are reachable regardless of router
# registration state. Neither requires a session.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Report liveness plus database and session-store reachability."""
    database_ok = request.app.state.user_store.ping()
    store_ok = request.app.state.session_store.ping()
    return HealthResponse(
        status="healthy" if database_ok and store_ok else "degraded",
        version=VERSION,
        uptime_seconds=round(time.monotonic() - request.app.state.started_at, 3),
        components={
            "app": "ok",
            "database": "ok" if database_ok else "error",
            "session_store": "ok" if store_ok else "error",
        },
    )


@app.get("/", include_in_schema=False)
async def root() -> dict:
    return {"message": "Welcome to UserGate"}
