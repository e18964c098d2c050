"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
authenticator do the work; these classes own the shape.

Three groups live here:
  - Persisted entities: User, Application.
  - Request-scoped credential material: BasicAuth, BearerToken, ApplicationToken.
    Frozen, never persisted, discarded after one authentication attempt.
  - AuthenticationOutcome: the typed result threaded through the call chain
    instead of loosely-typed request state.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from auth.errors import AuthError


@dataclass
class User:
    """An account that owns applications and may log in.

    password_hash is an Argon2 PHC string. It never leaves the process via
    the API and is excluded from repr() so it cannot end up in a log line.
    """

    name: str
    password_hash: str = field(repr=False)
    matrix_id: str = ""
    is_admin: bool = False
    id: int | None = None


@dataclass
class Application:
    """A message source owned by one user.

    token is generated once at creation (secrets.token_urlsafe) and is the
    application's only credential. colored_title=None means "use the
    gateway-wide default".
    """

    user_id: int
    name: str
    token: str = field(repr=False)
    colored_title: bool | None = None
    id: int | None = None


# ---------------------------------------------------------------------------
# Credential material (request-scoped)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BasicAuth:
    name: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class BearerToken:
    token: str = field(repr=False)


@dataclass(frozen=True)
class ApplicationToken:
    token: str = field(repr=False)


CredentialMaterial = Union[BasicAuth, BearerToken, ApplicationToken]


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthenticationOutcome:
    """Exactly one of user, application or denial is set.

    Build instances through the granted_user / granted_application / denied
    constructors; the invariant is checked in __post_init__ either way.
    """

    user: User | None = None
    application: Application | None = None
    denial: AuthError | None = None

    def __post_init__(self) -> None:
        populated = sum(v is not None for v in (self.user, self.application, self.denial))
        if populated != 1:
            raise ValueError("AuthenticationOutcome needs exactly one of user, application or denial")

    @classmethod
    def granted_user(cls, user: User) -> AuthenticationOutcome:
        return cls(user=user)

    @classmethod
    def granted_application(cls, application: Application) -> AuthenticationOutcome:
        return cls(application=application)

    @classmethod
    def denied(cls, reason: AuthError) -> AuthenticationOutcome:
        return cls(denial=reason)

    @property
    def ok(self) -> bool:
        return self.denial is None
