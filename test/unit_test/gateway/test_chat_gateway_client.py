from __future__ import annotations

import json
from typing import List

import httpx
import pytest

from cerebrin_ai.agent_core.schemas.domain import OutboundMessage, Platform
from cerebrin_ai.gateway.client import HttpChatGateway, NullChatGateway

BASE_URL = "http://mock-gateway/"


def _message() -> OutboundMessage:
    return OutboundMessage(to="+5491100000000", platform=Platform.whatsapp, text="hola")


def _gateway(handler, **kwargs) -> HttpChatGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpChatGateway(BASE_URL, client=client, **kwargs)


@pytest.mark.asyncio
async def test_send_posts_message_with_bearer_key() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    gateway = _gateway(handler, api_key="secret")

    assert await gateway.send(_message()) is True

    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "http://mock-gateway/api/send"
    assert request.headers["Authorization"] == "Bearer secret"
    assert json.loads(request.content) == {"to": "+5491100000000", "platform": "whatsapp", "text": "hola"}


@pytest.mark.asyncio
async def test_send_without_key_has_no_authorization_header() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    assert await _gateway(handler).send(_message()) is True
    assert "Authorization" not in seen[0].headers


@pytest.mark.asyncio
async def test_send_reports_gateway_error_as_false() -> None:
    gateway = _gateway(lambda request: httpx.Response(500, text="down"))

    assert await gateway.send(_message()) is False


@pytest.mark.asyncio
async def test_send_reports_transport_error_as_false() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    assert await _gateway(handler).send(_message()) is False


@pytest.mark.asyncio
async def test_aclose_leaves_injected_client_open() -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    gateway = HttpChatGateway(BASE_URL, client=client)

    await gateway.aclose()

    assert client.is_closed is False
    await client.aclose()


@pytest.mark.asyncio
async def test_null_gateway_drops_messages() -> None:
    gateway = NullChatGateway()

    assert await gateway.send(_message()) is False
    await gateway.aclose()
