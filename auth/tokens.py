"""
auth/tokens.py -- Bearer token issue/introspection and application tokens.

Security design decisions:
  Bearer tokens: python-jose with HS256. Tokens are signed with SECRET_KEY and
       carry the owning user id as the "sub" claim plus an expiry.
       Introspection returns None on any failure -- the authenticator turns
       that into InvalidToken.

  Application tokens: secrets.token_urlsafe(24) gives 192 bits of entropy and
       never depends on anything the user typed. Stored as-is because the
       gateway must look them up on every pushed message; the UNIQUE index in
       the store is the collision guard.

  SECRET_KEY: sourced from core.config.get_settings(), validated at startup.

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is the
kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("pushgate.auth.tokens")

_ALGORITHM = "HS256"

APPLICATION_TOKEN_BYTES = 24


def create_access_token(user_id: int, expire_seconds: int = 0) -> str:
    """Encode a signed bearer token for user_id.

    Args:
        user_id:        Numeric user ID stored in the DB.
        expire_seconds: Token lifetime in seconds. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    settings = get_settings()
    duration = expire_seconds if expire_seconds > 0 else settings.token_expire_seconds
    payload = {
        "sub": str(user_id),
        "exp": datetime.now(timezone.utc) + timedelta(seconds=duration),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=_ALGORITHM)


class JwtTokenIntrospector:
    """Recovers the owning subject from a bearer token issued by create_access_token().

    Any other token introspection mechanism (an external OAuth2 token-info
    endpoint, say) only needs the same introspect() method.
    """

    def __init__(self, secret_key: str | None = None) -> None:
        self._secret_key = secret_key

    def introspect(self, token: str) -> str | None:
        """Return the token's subject, or None if the token is invalid or expired."""
        secret = self._secret_key or get_settings().secret_key
        try:
            payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            return None
        return subject


def generate_application_token() -> str:
    """Return a new random application token (URL-safe, 32 chars)."""
    return secrets.token_urlsafe(APPLICATION_TOKEN_BYTES)
