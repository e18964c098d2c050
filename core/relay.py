"""
core/relay.py -- Hand-off point between the gateway and the message transport.

The gateway's job ends once a message is authenticated and validated. What
happens next (delivery into a chat room) belongs to a MessageDispatcher. The
default LogDispatcher only records the hand-off so the gateway runs without a
transport configured.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger("pushgate.relay")


@dataclass
class OutboundMessage:
    application_id: int
    user_id: int
    title: str
    message: str
    priority: int = 0
    colored_title: bool = False


class MessageDispatcher(Protocol):
    def dispatch(self, message: OutboundMessage) -> Optional[str]:
        """Deliver message; return a transport-side id if there is one."""
        ...


class LogDispatcher:
    """Accepts every message and logs its metadata (never the body)."""

    def dispatch(self, message: OutboundMessage) -> Optional[str]:
        logger.info(
            "Relaying message from application %d (user %d, priority %d, %d chars)",
            message.application_id,
            message.user_id,
            message.priority,
            len(message.message),
        )
        return None
