"""
Unit tests for the chat webhook endpoint.

Tests cover the shared secret check and the hand-off of accepted events to
the intent router.
"""

import pytest
from httpx import AsyncClient

from cerebrin_ai.agent_core import messages

pytestmark = pytest.mark.asyncio

URL = "http://localhost/api/v1/webhooks/chat"
SECRET = "s3cret"


def _event(sender: str, text: str) -> dict:
    return {"from": sender, "platform": "whatsapp", "text": text}


async def test_missing_secret_is_401(client: AsyncClient, gateway):
    response = await client.post(URL, json=_event("+1", "hola"))

    assert response.status_code == 401
    assert gateway.sent == []


async def test_wrong_secret_is_401(client: AsyncClient):
    response = await client.post(URL, json=_event("+1", "hola"), headers={"X-Webhook-Secret": "nope"})
    assert response.status_code == 401


async def test_secret_header_is_accepted(client: AsyncClient, gateway):
    response = await client.post(URL, json=_event("+1", "hola"), headers={"X-Webhook-Secret": SECRET})

    assert response.status_code == 200
    assert response.json()["status"] == "identity_not_found"
    assert gateway.texts == [messages.onboarding(gateway.sent[0].platform)]


async def test_bearer_secret_is_accepted(client: AsyncClient, make_tenant, gateway):
    tenant = await make_tenant()

    response = await client.post(
        URL, json=_event(tenant.handle, "estado"), headers={"Authorization": f"Bearer {SECRET}"}
    )

    assert response.status_code == 200
    assert response.json()["intent"] == "status"
    assert gateway.sent[0].to == tenant.handle


async def test_no_secret_configured_accepts_events(client: AsyncClient, control_plane):
    control_plane.settings = control_plane.settings.model_copy(update={"chat_webhook_secret": None})

    response = await client.post(URL, json=_event("+1", "hola"))

    assert response.status_code == 200


async def test_event_without_sender_is_422(client: AsyncClient):
    response = await client.post(
        URL, json={"platform": "whatsapp", "text": "hola"}, headers={"X-Webhook-Secret": SECRET}
    )
    assert response.status_code == 422


async def test_pipeline_request_through_webhook(client: AsyncClient, make_tenant, control_plane, repos, gateway):
    tenant = await make_tenant()

    response = await client.post(
        URL,
        json=_event(tenant.handle, "Necesito un informe sobre el mercado de café"),
        headers={"X-Webhook-Secret": SECRET},
    )
    await control_plane.pool.drain()

    body = response.json()
    assert body["status"] == "pipeline_created"
    pipeline = repos.pipelines.by_id[body["pipeline_id"]]
    assert pipeline.reply_to == tenant.handle
    assert gateway.texts[-1] == messages.pipeline_completed(pipeline)
