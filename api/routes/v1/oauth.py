"""
api/routes/v1/oauth.py -- Bearer token issue (OAuth2 password grant).

Routes:
  POST /api/v1/oauth2/token -- exchange name/password for a bearer token

Security:
  Rate-limited per IP (TOKEN_RATE_LIMIT, default 10/minute).
  Credentials are checked by the same BasicAuthScheme the authenticator uses,
  so timing equalization and the single generic error apply here too.
  Cache-Control: no-store on every response.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import TokenRequest, TokenResponse
from auth.authenticator import BasicAuthScheme
from auth.errors import AuthError
from auth.models import BasicAuth
from auth.tokens import create_access_token
from core.config import get_settings

logger = logging.getLogger("pushgate.api.oauth")

router = APIRouter()


@limiter.limit(get_settings().token_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/oauth2/token", response_model=TokenResponse)
def issue_token(request: Request, body: TokenRequest) -> JSONResponse:
    """Return a bearer token for valid credentials, 401 otherwise.

    The error body is identical for unknown names and wrong passwords.
    """
    password_login: BasicAuthScheme = request.app.state.password_login
    try:
        user = password_login.resolve(BasicAuth(name=body.username, password=body.password))
    except AuthError as exc:
        logger.info("Token request denied: %s", exc.code)
        resp = JSONResponse(
            status_code=exc.status_code,
            content={"error": {"code": exc.code, "message": exc.public_message}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    expires_in = get_settings().token_expire_seconds
    token = create_access_token(user.id, expire_seconds=expires_in)
    resp = JSONResponse(
        status_code=200,
        content=TokenResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=expires_in,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp
