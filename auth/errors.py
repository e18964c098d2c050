"""
auth/errors.py -- Typed failure reasons for authentication and credential checks.

Every failure the auth package can produce is one of these classes. Each one
knows its machine-readable code and the HTTP status it maps to, so the FastAPI
layer translates them without a lookup table of its own.

Client-facing messages are deliberately generic. InvalidCredentials is used
for both "unknown user" and "wrong password" -- callers must never pick a
more specific message for either case.

Layer rule: no imports from api/ or core/. Pure stdlib.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every authentication, authorization and upstream failure."""

    code: str = "unauthorized"
    status_code: int = 401
    public_message: str = "Authentication required."


class InvalidCredentialFormat(AuthError):
    """A stored digest or a supplied token could not be parsed."""

    code = "invalid_credential_format"
    public_message = "Credentials are malformed."


class InvalidCredentials(AuthError):
    """Wrong password, unknown user, or no credentials at all."""

    code = "invalid_credentials"
    public_message = "Invalid username or password."


class InvalidToken(AuthError):
    """Absent, expired, unknown or unowned token."""

    code = "invalid_token"
    public_message = "Invalid or missing token."


class InsufficientPrivilege(AuthError):
    """The principal was identified but fails an authorization predicate."""

    code = "forbidden"
    status_code = 403
    public_message = "You are not allowed to perform this action."


class UpstreamUnavailable(AuthError):
    """A remote service needed for a credential check failed."""

    code = "upstream_unavailable"
    status_code = 503
    public_message = "A required upstream service is unavailable."


class BreachProtocolError(UpstreamUnavailable):
    """The breached-password service failed or answered outside the protocol.

    Raised for network errors, timeouts, non-200 responses and malformed
    response lines. It never means "password is safe".
    """

    code = "breach_check_unavailable"
    public_message = "The breached password check could not be completed."
