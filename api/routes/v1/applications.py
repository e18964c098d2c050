"""
api/routes/v1/applications.py -- Application management REST endpoints.

Routes:
  POST   /api/v1/applications       -- create application, returns its token
  GET    /api/v1/applications       -- list caller's applications
  DELETE /api/v1/applications/{id}  -- delete application (ownership checked)

All routes require an authenticated user. An application token is generated
server-side from secrets and can never be chosen by the client.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import ApplicationCreate, ApplicationResponse
from auth.dependencies import require_user
from auth.models import Application, User
from auth.store import CredentialStore
from auth.tokens import generate_application_token

logger = logging.getLogger("pushgate.api.applications")

router = APIRouter()


@router.post("/applications", response_model=ApplicationResponse, status_code=201)
def create_application(
    request: Request,
    body: ApplicationCreate,
    current_user: User = Depends(require_user),
) -> ApplicationResponse:
    """Create an application owned by the caller."""
    store: CredentialStore = request.app.state.store

    application = Application(
        user_id=current_user.id,
        name=body.name,
        token=generate_application_token(),
        colored_title=body.colored_title,
    )
    application.id = store.create_application(application, token_factory=generate_application_token)
    logger.info("Application id %d created for user id %d", application.id, current_user.id)
    return ApplicationResponse.from_application(application)


@router.get("/applications", response_model=list[ApplicationResponse])
def list_applications(
    request: Request,
    current_user: User = Depends(require_user),
) -> list[ApplicationResponse]:
    """List the caller's applications, tokens included."""
    store: CredentialStore = request.app.state.store
    return [ApplicationResponse.from_application(a) for a in store.get_applications_for_user(current_user.id)]


@router.delete("/applications/{app_id}", status_code=204)
def delete_application(
    request: Request,
    app_id: int,
    current_user: User = Depends(require_user),
) -> Response:
    """Delete an application. Ownership is verified server-side [IDOR guard]."""
    store: CredentialStore = request.app.state.store
    if not store.delete_application(app_id, current_user.id):
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Application not found."},
        )
    return Response(status_code=204)
