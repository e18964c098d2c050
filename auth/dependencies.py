"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Thin adapters over the Authenticator stored on app.state by the lifespan.
They turn an AuthError into an HTTPException carrying the structured
{"code", "message"} detail that api/main.py renders, and nothing else.

  require_user()        -- any authenticated user, 401 otherwise.
  require_admin()       -- 401 if unauthenticated, 403 if not an admin.
  require_application() -- a valid application token, 401 otherwise.

All three are plain (sync) functions: FastAPI runs them in its threadpool,
which keeps Argon2 verification off the event loop.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.authenticator import Authenticator
from auth.errors import AuthError
from auth.models import Application, User


def _authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def to_http_exception(exc: AuthError, challenge: bool = True) -> HTTPException:
    """Map an AuthError to an HTTPException without leaking the internal reason."""
    headers = None
    if challenge and exc.status_code == 401:
        headers = {"WWW-Authenticate": 'Basic realm="pushgate"'}
    return HTTPException(
        status_code=exc.status_code,
        detail={"code": exc.code, "message": exc.public_message},
        headers=headers,
    )


def require_user(request: Request) -> User:
    """Require valid user credentials (Basic or bearer).

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(require_user)): ...
    """
    try:
        return _authenticator(request).require_user(request)
    except AuthError as exc:
        raise to_http_exception(exc) from exc


def require_admin(request: Request) -> User:
    """Require an admin user. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    try:
        return _authenticator(request).require_admin(request)
    except AuthError as exc:
        raise to_http_exception(exc) from exc


def require_application(request: Request) -> Application:
    """Require an application token via ?token= or the X-Gotify-Key header."""
    try:
        return _authenticator(request).require_application(request)
    except AuthError as exc:
        raise to_http_exception(exc, challenge=False) from exc
