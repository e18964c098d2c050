"""
api/routes/v1/message.py -- Message push endpoint.

Routes:
  POST /api/v1/message -- push a message as an application

Authentication is by application token only (?token= or X-Gotify-Key). The
accepted message goes to the MessageDispatcher on app.state; delivery is the
dispatcher's business.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MessageCreate, MessageResponse
from auth.dependencies import require_application
from auth.models import Application
from core.config import get_settings
from core.relay import MessageDispatcher, OutboundMessage

router = APIRouter()


@router.post("/message", response_model=MessageResponse)
def push_message(
    request: Request,
    body: MessageCreate,
    application: Application = Depends(require_application),
) -> MessageResponse:
    """Accept a message from an application and hand it to the dispatcher."""
    dispatcher: MessageDispatcher = request.app.state.dispatcher

    colored_title = application.colored_title
    if colored_title is None:
        colored_title = get_settings().colored_title

    message_id = dispatcher.dispatch(
        OutboundMessage(
            application_id=application.id,
            user_id=application.user_id,
            title=body.title or application.name,
            message=body.message,
            priority=body.priority,
            colored_title=colored_title,
        )
    )
    return MessageResponse(
        application_id=application.id,
        title=body.title or application.name,
        message=body.message,
        priority=body.priority,
        id=message_id,
    )
