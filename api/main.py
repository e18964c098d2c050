"""
api/main.py -- FastAPI application entry point for PushGate.

Client applications push messages here; users manage their account and
applications. Every protected route goes through the Authenticator stored on
app.state (see auth/dependencies.py).

Run with:      uvicorn asgi:app --reload

Middleware stack:
  1. SlowAPIMiddleware -- enforces per-route rate limits from api.limiter
  2. log_requests      -- one log line per request with latency

Lifespan handles startup (store, authenticator, breach checker, dispatcher,
initial admin) and shutdown (close DB connection) symmetrically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.applications import router as applications_router
from api.routes.v1.message import router as message_router
from api.routes.v1.oauth import router as oauth_router
from api.routes.v1.users import router as users_router
from auth.authenticator import Authenticator, BasicAuthScheme, build_schemes
from auth.breach import BreachChecker
from auth.models import User
from auth.passwords import Argon2Params, hash_password
from auth.store import CredentialStore
from auth.tokens import JwtTokenIntrospector
from core.config import DEFAULT_ADMIN_PASSWORD, Settings, get_settings
from core.relay import LogDispatcher, MessageDispatcher

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("pushgate.api")


# ---------------------------------------------------------------------------
# Application state wiring
# ---------------------------------------------------------------------------


def init_state(
    app: FastAPI,
    store: CredentialStore,
    settings: Settings,
    breach_checker: Optional[BreachChecker] = None,
    dispatcher: Optional[MessageDispatcher] = None,
) -> None:
    """Attach the store and everything built on top of it to app.state.

    Shared by the real lifespan and the test lifespan so both wire the
    authenticator the same way.
    """
    params = Argon2Params.from_settings(settings)
    password_login = BasicAuthScheme(store, params)
    schemes = build_schemes(settings.auth_scheme_names(), store, params, JwtTokenIntrospector(), basic=password_login)

    app.state.store = store
    app.state.argon2_params = params
    app.state.authenticator = Authenticator(store, schemes)
    app.state.password_login = password_login
    app.state.breach_checker = breach_checker or BreachChecker(
        base_url=settings.breach_api_url,
        timeout=settings.breach_timeout_seconds,
    )
    app.state.dispatcher = dispatcher or LogDispatcher()


def ensure_admin(store: CredentialStore, settings: Settings, params: Argon2Params) -> Optional[int]:
    """Create the configured admin account if the user table is empty.

    Returns the new user's id, or None if users already existed.
    """
    if store.has_users():
        return None
    admin = User(
        name=settings.admin_name,
        password_hash=hash_password(settings.admin_password, params),
        matrix_id=settings.admin_matrix_id,
        is_admin=True,
    )
    user_id = store.create_user(admin)
    logger.info("Created initial admin user '%s' (id %d)", settings.admin_name, user_id)
    if settings.admin_password == DEFAULT_ADMIN_PASSWORD and not settings.debug:
        logger.warning(
            "Initial admin '%s' uses the default password. Change it or set ADMIN_PASSWORD before first start.",
            settings.admin_name,
        )
    return user_id


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime."""
    settings = get_settings()
    logger.info("PushGate starting up")

    init_state(app, CredentialStore(settings.database_url), settings)
    ensure_admin(app.state.store, settings, app.state.argon2_params)
    logger.info(
        "Auth initialized (schemes=%s, breach_check=%s)",
        ",".join(settings.auth_scheme_names()),
        settings.check_breached_passwords,
    )

    yield

    app.state.store.close()
    logger.info("PushGate shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="PushGate API",
    description="Notification relay gateway. Applications push messages; PushGate authenticates and relays them.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    # request.url.path only -- the query string may carry an application token.
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

app.include_router(oauth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(applications_router, prefix="/api/v1", tags=["Applications"])
app.include_router(message_router, prefix="/api/v1", tags=["Messages"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation.

    Pydantic's error list echoes the offending input, which for these routes
    may be a password -- only field locations and messages are returned.
    """
    errors = [f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', '')}" for e in exc.errors()]
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail="; ".join(errors),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field. Headers (WWW-Authenticate on 401) are passed through.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint -- no auth, no rate limit
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)
