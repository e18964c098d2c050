"""
api/routes/v1/users.py -- User management REST endpoints.

Routes:
  GET    /api/v1/users              -- list all users (admin only)
  POST   /api/v1/users              -- create user (admin only)
  DELETE /api/v1/users/{id}         -- delete user and its applications (admin only)
  GET    /api/v1/users/me           -- current user info (requires auth)
  PUT    /api/v1/users/me/password  -- change own password (requires auth)

Every new password passes vet_new_password() before it is hashed. With
CHECK_BREACHED_PASSWORDS on, that includes the k-anonymity breach lookup:
  compromised            -> 400 password_compromised
  breach service failure -> 503 breach_check_unavailable, unless
                            BREACH_CHECK_FAIL_OPEN is set (then: warning log)

Handlers that hash are plain def so the Argon2 work runs in the threadpool.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.exc import IntegrityError

from api.models import PasswordChange, UserCreate, UserResponse
from auth.breach import BreachChecker
from auth.dependencies import require_admin, require_user, to_http_exception
from auth.errors import BreachProtocolError
from auth.models import User
from auth.passwords import hash_password
from auth.store import CredentialStore
from core.config import get_settings

logger = logging.getLogger("pushgate.api.users")

router = APIRouter()


def vet_new_password(request: Request, password: str) -> None:
    """Reject a password the breach corpus knows about.

    The check is skipped entirely when disabled in settings. An upstream
    failure is never read as "not compromised": it blocks the change unless
    the operator opted into fail-open.
    """
    settings = get_settings()
    if not settings.check_breached_passwords:
        return

    checker: BreachChecker = request.app.state.breach_checker
    try:
        compromised = checker.is_compromised(password)
    except BreachProtocolError as exc:
        if settings.breach_check_fail_open:
            logger.warning("Breach check unavailable, accepting password unchecked: %s", exc)
            return
        raise to_http_exception(exc, challenge=False) from exc

    if compromised:
        raise HTTPException(
            status_code=400,
            detail={
                "code": "password_compromised",
                "message": "This password appears in a known data breach. Choose another one.",
            },
        )


# ---------------------------------------------------------------------------
# Admin endpoints
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, current_user: User = Depends(require_admin)) -> list[UserResponse]:
    """List all user accounts. Admin only."""
    store: CredentialStore = request.app.state.store
    return [UserResponse.from_user(u) for u in store.list_users()]


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current_user: User = Depends(require_admin),
) -> UserResponse:
    """Create a new user account. Admin only."""
    store: CredentialStore = request.app.state.store

    vet_new_password(request, body.password)
    new_user = User(
        name=body.name,
        password_hash=hash_password(body.password, request.app.state.argon2_params),
        matrix_id=body.matrix_id,
        is_admin=body.is_admin,
    )
    try:
        user_id = store.create_user(new_user)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that name already exists."},
        ) from exc

    logger.info("User id %d created by admin id %d", user_id, current_user.id)
    new_user.id = user_id
    return UserResponse.from_user(new_user)


@router.delete("/users/{user_id}", status_code=204)
def delete_user(
    request: Request,
    user_id: int,
    current_user: User = Depends(require_admin),
) -> Response:
    """Delete a user and the applications it owns. Admins cannot delete themselves."""
    store: CredentialStore = request.app.state.store
    if user_id == current_user.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deletion", "message": "You cannot delete your own account."},
        )
    if not store.delete_user(user_id):
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Self-service endpoints
# ---------------------------------------------------------------------------


@router.get("/users/me", response_model=UserResponse)
def me(current_user: User = Depends(require_user)) -> UserResponse:
    """Return identity information for the currently authenticated user."""
    return UserResponse.from_user(current_user)


@router.put("/users/me/password", status_code=204)
def change_password(
    request: Request,
    body: PasswordChange,
    current_user: User = Depends(require_user),
) -> Response:
    """Replace the caller's password. The new digest uses the current Argon2 parameters."""
    store: CredentialStore = request.app.state.store

    vet_new_password(request, body.password)
    store.update_password(current_user.id, hash_password(body.password, request.app.state.argon2_params))
    logger.info("Password changed for user id %d", current_user.id)
    return Response(status_code=204)
