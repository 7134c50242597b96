"""Chat gateway client

Overview
--------
Outbound half of the chat gateway integration. The gateway relays messages to
WhatsApp and Telegram; the control plane only needs one endpoint of it:

- ``POST {base_url}/api/send`` with a JSON ``OutboundMessage`` body and an
  ``Authorization: Bearer <api_key>`` header.

Delivery is best effort. ``send`` never raises: transport errors and non-2xx
responses are logged and reported as ``False``. There is no retry.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from cerebrin_ai.agent_core.schemas.domain import OutboundMessage

logger = logging.getLogger(__name__)


class ChatGateway(Protocol):
    async def send(self, message: OutboundMessage) -> bool:
        ...


class HttpChatGateway:
    """HTTP client for the chat gateway's send endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Create a gateway client.

        Args:
            base_url: Base URL of the gateway (e.g. ``http://localhost:18789``).
            api_key: Bearer key expected by the gateway, if any.
            timeout: Timeout of the internal client.
            client: Optional preconfigured ``httpx.AsyncClient`` to use.
        """
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def send(self, message: OutboundMessage) -> bool:
        url = f"{self.base_url}/api/send"
        try:
            response = await self._client.post(
                url,
                json=message.model_dump(mode="json", exclude_none=True),
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.error(f"Chat gateway send failed for {message.platform.value}:{message.to}: {e}")
            return False
        if response.is_error:
            logger.error(
                f"Chat gateway rejected message for {message.platform.value}:{message.to}: "
                f"HTTP {response.status_code} {response.text[:200]}"
            )
            return False
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class NullChatGateway:
    """Gateway used when no gateway URL is configured; drops every message."""

    async def send(self, message: OutboundMessage) -> bool:
        logger.warning(f"No chat gateway configured; dropping message to {message.platform.value}:{message.to}")
        return False

    async def aclose(self) -> None:
        return None
