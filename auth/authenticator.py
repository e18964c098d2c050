"""
auth/authenticator.py -- Resolves the principal behind an inbound request.

One pass per request, no cross-request state:

    request -> scheme.extract() -> CredentialMaterial
            -> scheme.resolve() -> User            (or AuthError)
            -> predicates(User)                    (or InsufficientPrivilege)
            -> AuthenticationOutcome, principal on request.state

Which credential schemes are tried, and in which order, is decided by whoever
builds the Authenticator (see build_schemes()). Which property a route needs
is decided at the call site by passing predicates such as is_admin. Nothing
here is a module-level hook that could be swapped at runtime.

Credential surface:
  Authorization: Basic <b64(name:password)>   user login
  Authorization: Bearer <token>               bearer token
  ?token=<token>                              application or bearer token
  X-Gotify-Key: <token>                       same, lower precedence than ?token

Enumeration safety: an unknown name and a wrong password are both reported as
InvalidCredentials, and an unknown name still pays for one Argon2
verification against a dummy digest so response timing does not tell them
apart either.

Layer rule: no imports from api/ or core/. Starlette's Request is the only
framework type used.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
from collections.abc import Callable, Sequence
from typing import Protocol

from starlette.requests import Request

from auth.errors import (
    AuthError,
    InsufficientPrivilege,
    InvalidCredentialFormat,
    InvalidCredentials,
    InvalidToken,
)
from auth.models import (
    Application,
    ApplicationToken,
    AuthenticationOutcome,
    BasicAuth,
    BearerToken,
    CredentialMaterial,
    User,
)
from auth.passwords import Argon2Params, hash_password, needs_rehash, verify_password

logger = logging.getLogger("pushgate.auth")

TOKEN_HEADER = "X-Gotify-Key"
TOKEN_QUERY_PARAM = "token"

UserPredicate = Callable[[User], bool]


class UserLookup(Protocol):
    def get_user_by_name(self, name: str) -> User | None: ...

    def get_user_by_id(self, user_id: int) -> User | None: ...


class CredentialStoreLike(UserLookup, Protocol):
    def get_application_by_token(self, token: str) -> Application | None: ...


class TokenIntrospector(Protocol):
    def introspect(self, token: str) -> str | None: ...


class CredentialScheme(Protocol):
    """One way of proving a user identity.

    extract() returns None when the request carries no material for this
    scheme, which lets the authenticator move on to the next one. resolve()
    either returns the user or raises an AuthError.
    """

    name: str

    def extract(self, request: Request) -> CredentialMaterial | None: ...

    def resolve(self, material: CredentialMaterial) -> User: ...


# ---------------------------------------------------------------------------
# Token extraction
# ---------------------------------------------------------------------------


def token_from_query(request: Request) -> str:
    return request.query_params.get(TOKEN_QUERY_PARAM, "")


def token_from_header(request: Request) -> str:
    return request.headers.get(TOKEN_HEADER, "")


def token_from_query_or_header(request: Request) -> str:
    """Query parameter first, then header. Clients that cannot set headers use ?token=."""
    return token_from_query(request) or token_from_header(request)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def is_admin(user: User) -> bool:
    return user.is_admin


def all_of(*predicates: UserPredicate) -> UserPredicate:
    """Combine predicates; the result holds only when every one holds."""

    def _check(user: User) -> bool:
        return all(p(user) for p in predicates)

    return _check


# ---------------------------------------------------------------------------
# Schemes
# ---------------------------------------------------------------------------


class BasicAuthScheme:
    """HTTP Basic credentials checked against the stored Argon2 digest."""

    name = "basic"

    def __init__(self, store: UserLookup, params: Argon2Params) -> None:
        self._store = store
        self._params = params
        # Verified against when the name is unknown, so both failure paths cost
        # one Argon2 run under the current parameters.
        self._dummy_digest = hash_password(secrets.token_hex(16), params)

    def extract(self, request: Request) -> BasicAuth | None:
        header = request.headers.get("Authorization", "")
        scheme, _, encoded = header.partition(" ")
        if scheme.lower() != "basic":
            return None
        try:
            decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise InvalidCredentialFormat("malformed Basic authorization header") from exc
        name, sep, password = decoded.partition(":")
        if not sep:
            raise InvalidCredentialFormat("malformed Basic authorization header")
        return BasicAuth(name=name, password=password)

    def resolve(self, material: CredentialMaterial) -> User:
        if not isinstance(material, BasicAuth):
            raise InvalidCredentials()

        user = self._store.get_user_by_name(material.name)
        if user is None:
            # Equalize timing -- do NOT return before running Argon2.
            verify_password(material.password, self._dummy_digest)
            raise InvalidCredentials("unknown user")

        try:
            matched = verify_password(material.password, user.password_hash)
        except InvalidCredentialFormat:
            logger.error("Stored password digest for user id %s is malformed", user.id)
            raise InvalidCredentials("unusable stored digest") from None
        if not matched:
            raise InvalidCredentials("password mismatch")

        if needs_rehash(user.password_hash, self._params):
            logger.info("Password digest for user id %s uses outdated Argon2 parameters", user.id)
        return user


class BearerTokenScheme:
    """Bearer token introspected to its owning user id."""

    name = "bearer"

    def __init__(self, store: UserLookup, introspector: TokenIntrospector) -> None:
        self._store = store
        self._introspector = introspector

    def extract(self, request: Request) -> BearerToken | None:
        header = request.headers.get("Authorization", "")
        scheme, _, value = header.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return BearerToken(token=value.strip())
        token = token_from_query_or_header(request)
        return BearerToken(token=token) if token else None

    def resolve(self, material: CredentialMaterial) -> User:
        if not isinstance(material, BearerToken) or not material.token:
            raise InvalidToken("no token available")

        subject = self._introspector.introspect(material.token)
        if subject is None:
            raise InvalidToken("token rejected by introspection")
        try:
            user_id = int(subject)
        except ValueError:
            raise InvalidToken("token subject has wrong format") from None

        user = self._store.get_user_by_id(user_id)
        if user is None:
            raise InvalidToken("token owner does not exist")
        return user


def build_schemes(
    names: Sequence[str],
    store: UserLookup,
    params: Argon2Params,
    introspector: TokenIntrospector,
    basic: BasicAuthScheme | None = None,
) -> list[CredentialScheme]:
    """Instantiate schemes by name ("basic", "bearer") in the given order.

    Pass basic to reuse an existing BasicAuthScheme (and its dummy digest)
    instead of building a second one.
    """
    schemes: list[CredentialScheme] = []
    for name in names:
        if name == "basic":
            schemes.append(basic or BasicAuthScheme(store, params))
        elif name == "bearer":
            schemes.append(BearerTokenScheme(store, introspector))
        else:
            raise ValueError(f"Unknown authentication scheme: {name!r}")
    return schemes


# ---------------------------------------------------------------------------
# Authenticator
# ---------------------------------------------------------------------------


class Authenticator:
    """Authentication and authorization entry point for request handlers.

    Usage:
        authenticator = Authenticator(store, build_schemes(["basic", "bearer"], ...))
        user = authenticator.require_user(request, is_admin)       # raises AuthError
        outcome = authenticator.authenticate_user(request)         # never raises AuthError
    """

    def __init__(self, store: CredentialStoreLike, schemes: Sequence[CredentialScheme]) -> None:
        if not schemes:
            raise ValueError("Authenticator needs at least one credential scheme")
        self._store = store
        self._schemes = list(schemes)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def authenticate_user(self, request: Request, *predicates: UserPredicate) -> AuthenticationOutcome:
        """Resolve the user behind request and check predicates against it.

        The first scheme that finds credential material decides the outcome;
        a failure there is not retried with later schemes.
        """
        try:
            user = self._resolve_user(request)
        except AuthError as exc:
            logger.info("Authentication denied on %s: %s (%s)", request.url.path, exc.code, exc)
            return AuthenticationOutcome.denied(exc)

        if not all(p(user) for p in predicates):
            logger.info("Authorization denied on %s for user id %s", request.url.path, user.id)
            return AuthenticationOutcome.denied(InsufficientPrivilege("predicate failed"))

        request.state.user = user
        return AuthenticationOutcome.granted_user(user)

    def require_user(self, request: Request, *predicates: UserPredicate) -> User:
        """Like authenticate_user() but raises the denial reason."""
        outcome = self.authenticate_user(request, *predicates)
        if outcome.denial is not None:
            raise outcome.denial
        return outcome.user

    def require_admin(self, request: Request) -> User:
        return self.require_user(request, is_admin)

    def _resolve_user(self, request: Request) -> User:
        for scheme in self._schemes:
            material = scheme.extract(request)
            if material is not None:
                return scheme.resolve(material)
        raise InvalidCredentials("no credentials were supplied")

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    def authenticate_application(self, request: Request) -> AuthenticationOutcome:
        """Resolve the application whose token accompanies request."""
        token = token_from_query_or_header(request)
        if not token:
            return AuthenticationOutcome.denied(InvalidToken("no application token supplied"))

        material = ApplicationToken(token=token)
        application = self._store.get_application_by_token(material.token)
        if application is None:
            logger.info("Unknown application token on %s", request.url.path)
            return AuthenticationOutcome.denied(InvalidToken("unknown application token"))

        request.state.application = application
        return AuthenticationOutcome.granted_application(application)

    def require_application(self, request: Request) -> Application:
        outcome = self.authenticate_application(request)
        if outcome.denial is not None:
            raise outcome.denial
        return outcome.application
