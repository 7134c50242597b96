"""
Chat Webhook Endpoints.

The chat gateway forwards every inbound WhatsApp or Telegram event here. Each
accepted event is handed to the intent router, which sends exactly one reply
back through the gateway.
"""

import hmac
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, status

from cerebrin_ai.agent_core.intent.router import InboundOutcome
from cerebrin_ai.agent_core.schemas.domain import InboundMessage
from cerebrin_ai.core.logging_config import get_logger
from cerebrin_ai.server.services.deps import ControlPlaneDep

logger = get_logger(__name__)

router = APIRouter()


def _presented_secret(x_webhook_secret: Optional[str], authorization: Optional[str]) -> Optional[str]:
    if x_webhook_secret:
        return x_webhook_secret
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return None


@router.post(
    "/chat",
    response_model=InboundOutcome,
    summary="Receive Chat Event",
    description="Receive one inbound chat event from the chat gateway.",
    response_description="What the control plane did with the event.",
    responses={401: {"description": "Missing or wrong webhook secret"}},
)
async def receive_chat_event(
    message: InboundMessage,
    control_plane: ControlPlaneDep,
    x_webhook_secret: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
):
    """
    Handle an inbound chat event.

    When ``CHAT_WEBHOOK_SECRET`` is configured the gateway must present it in
    ``X-Webhook-Secret`` or as a bearer token.
    """
    expected = control_plane.settings.gateway.webhook_secret
    if expected:
        presented = _presented_secret(x_webhook_secret, authorization)
        if presented is None or not hmac.compare_digest(presented, expected):
            logger.warning(f"Rejected chat webhook from {message.platform.value}:{message.sender}: bad secret")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")

    return await control_plane.intent_router.handle(message)
