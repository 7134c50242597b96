"""
End-to-end tests driving the control plane through the HTTP API.

Every request goes through the FastAPI app, the intent router, the pipeline
orchestrator and the SQL repositories on a SQLite file, with simulation mode
standing in for the generative providers.
"""

import pytest
from httpx import AsyncClient

from cerebrin_ai.agent_core import messages
from cerebrin_ai.agent_core.backends.simulated import SIMULATED_REPLY
from cerebrin_ai.agent_core.schemas.domain import (
    ActionKind,
    ApprovalStatus,
    DocumentKind,
    HitlLevel,
    PipelineStatus,
    StepStatus,
)

pytestmark = [pytest.mark.asyncio, pytest.mark.e2e]

WEBHOOK_URL = "/api/v1/webhooks/chat"
HEADERS = {"X-Webhook-Secret": "e2e-secret"}
REQUEST = "Necesito un informe sobre el mercado de café de especialidad"


def _event(sender: str, text: str) -> dict:
    return {"from": sender, "platform": "whatsapp", "text": text}


async def _post_chat(client: AsyncClient, sender: str, text: str) -> dict:
    response = await client.post(WEBHOOK_URL, json=_event(sender, text), headers=HEADERS)
    assert response.status_code == 200
    return response.json()


class TestWebhookFlow:
    async def test_unknown_sender_is_onboarded(self, api_client, recording_gateway):
        body = await _post_chat(api_client, "+5491100009999", "hola")

        assert body["status"] == "identity_not_found"
        assert recording_gateway.texts == [messages.onboarding(recording_gateway.sent[0].platform)]

    async def test_chat_reply_is_simulated(self, api_client, register_tenant, recording_gateway):
        tenant = await register_tenant()

        body = await _post_chat(api_client, tenant.handle, "hola, ¿qué tal?")

        assert body == {"intent": "chat", "status": "chat_replied", "pipeline_id": None}
        assert recording_gateway.sent[-1].to == tenant.handle
        assert recording_gateway.texts[-1].strip() == SIMULATED_REPLY

    async def test_autonomous_pipeline_runs_to_completion(
        self, api_client, sql_control_plane, sql_repos, register_tenant, recording_gateway
    ):
        tenant = await register_tenant(hitl=HitlLevel.autonomous)

        body = await _post_chat(api_client, tenant.handle, REQUEST)
        await sql_control_plane.pool.drain()

        assert body["status"] == "pipeline_created"
        pipeline = await sql_repos.pipelines.get(body["pipeline_id"])
        assert pipeline.status is PipelineStatus.completed
        assert [s.status for s in pipeline.steps] == [StepStatus.completed] * 4
        assert pipeline.result
        assert recording_gateway.texts[-1] == messages.pipeline_completed(pipeline)

        lessons = await sql_repos.resonance.search(tenant.workspace.id, ["café"])
        assert len(lessons) == 1
        assert lessons[0].content.startswith("Pipeline completado (calidad 7/10, revisiones 0)")

        [project] = await sql_repos.documents.list(tenant.workspace.id, kind=DocumentKind.project)
        assert project.status == "done"
        assert project.metadata["pipeline_id"] == pipeline.id
        assert project.metadata["progress_pct"] == 100
        tasks = await sql_repos.documents.list(tenant.workspace.id, kind=DocumentKind.task)
        assert sorted(t.id for t in tasks) == sorted(s.task_id for s in pipeline.steps)
        assert {t.status for t in tasks} == {"done"}
        assert await sql_repos.documents.count_open(tenant.workspace.id, kind=DocumentKind.task) == 0

    async def test_repeat_request_reports_existing_pipeline(
        self, api_client, sql_control_plane, sql_repos, register_tenant
    ):
        tenant = await register_tenant()

        first = await _post_chat(api_client, tenant.handle, REQUEST)
        await sql_control_plane.pool.drain()
        again = await _post_chat(api_client, tenant.handle, REQUEST.upper())

        assert again["status"] == "pipeline_already_finished"
        assert again["pipeline_id"] == first["pipeline_id"]

    async def test_plan_gate_approved_over_chat(
        self, api_client, sql_control_plane, sql_repos, register_tenant, recording_gateway
    ):
        tenant = await register_tenant(hitl=HitlLevel.plan_only, resonance_score=70)

        created = await _post_chat(api_client, tenant.handle, REQUEST)
        await sql_control_plane.pool.drain()

        parked = await sql_repos.pipelines.get(created["pipeline_id"])
        assert parked.status is PipelineStatus.awaiting_approval
        pending = await sql_repos.approvals.list_pending(tenant.workspace.id)
        assert [a.action_kind for a in pending] == [ActionKind.execute_plan]

        approved = await _post_chat(api_client, tenant.handle, "ok aprobar")
        await sql_control_plane.pool.drain()

        assert approved["intent"] == "approve"
        pipeline = await sql_repos.pipelines.get(created["pipeline_id"])
        assert pipeline.status is PipelineStatus.completed
        assert pipeline.plan_approved is True
        assert (await sql_repos.approvals.get(pending[0].id)).status is ApprovalStatus.approved
        assert (await sql_repos.directory.get_agent(tenant.agent.id)).resonance_score == 72
        assert recording_gateway.texts[-1] == messages.pipeline_completed(pipeline)

    async def test_status_lists_pending_work(self, api_client, sql_control_plane, register_tenant, recording_gateway):
        tenant = await register_tenant(hitl=HitlLevel.plan_only)
        await _post_chat(api_client, tenant.handle, REQUEST)
        await sql_control_plane.pool.drain()

        body = await _post_chat(api_client, tenant.handle, "estado")

        assert body["status"] == "status_sent"
        assert recording_gateway.sent[-1].to == tenant.handle


class TestApprovalsApi:
    async def test_rejecting_delivery_fails_the_pipeline(
        self, api_client, sql_control_plane, sql_repos, register_tenant
    ):
        tenant = await register_tenant(hitl=HitlLevel.result_only, resonance_score=70)
        created = await _post_chat(api_client, tenant.handle, REQUEST)
        await sql_control_plane.pool.drain()

        listed = await api_client.get("/api/v1/approvals/", params={"workspace_id": tenant.workspace.id})
        [approval] = listed.json()
        assert approval["action_kind"] == ActionKind.pipeline_delivery.value

        response = await api_client.post(
            f"/api/v1/approvals/{approval['id']}", json={"decision": "rejected", "decided_by": tenant.user_id}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        pipeline = await sql_repos.pipelines.get(created["pipeline_id"])
        assert pipeline.status is PipelineStatus.failed
        assert (await sql_repos.directory.get_agent(tenant.agent.id)).resonance_score == 67

    async def test_second_decision_conflicts(self, api_client, sql_control_plane, register_tenant):
        tenant = await register_tenant(hitl=HitlLevel.result_only)
        await _post_chat(api_client, tenant.handle, REQUEST)
        await sql_control_plane.pool.drain()
        [approval] = (await api_client.get("/api/v1/approvals/", params={"workspace_id": tenant.workspace.id})).json()

        first = await api_client.post(f"/api/v1/approvals/{approval['id']}", json={"decision": "approved"})
        second = await api_client.post(f"/api/v1/approvals/{approval['id']}", json={"decision": "rejected"})

        assert first.status_code == 200
        assert second.status_code == 409


class TestPipelinesApi:
    async def test_web_pipeline_completes_without_progress_messages(
        self, api_client, sql_control_plane, register_tenant, recording_gateway
    ):
        tenant = await register_tenant()
        payload = {
            "workspace_id": tenant.workspace.id,
            "user_id": tenant.user_id,
            "agent_id": tenant.agent.id,
            "request_text": "Escribe un artículo sobre compostaje urbano",
        }

        created = await api_client.post("/api/v1/pipelines/", json=payload)
        await sql_control_plane.pool.drain()
        fetched = await api_client.get(f"/api/v1/pipelines/{created.json()['id']}")

        assert created.status_code == 202
        assert fetched.json()["status"] == "completed"
        assert recording_gateway.sent == []

    async def test_duplicate_web_request_conflicts(self, api_client, register_tenant):
        tenant = await register_tenant(hitl=HitlLevel.plan_only)
        payload = {
            "workspace_id": tenant.workspace.id,
            "user_id": tenant.user_id,
            "agent_id": tenant.agent.id,
            "request_text": "Escribe un artículo sobre compostaje urbano",
        }

        first = await api_client.post("/api/v1/pipelines/", json=payload)
        second = await api_client.post("/api/v1/pipelines/", json=payload)

        assert second.status_code == 409
        assert second.json()["pipeline_id"] == first.json()["id"]

    async def test_active_pipeline_lookup(self, api_client, register_tenant):
        tenant = await register_tenant()

        response = await api_client.get(
            "/api/v1/pipelines/active", params={"user_id": tenant.user_id, "workspace_id": tenant.workspace.id}
        )

        assert response.status_code == 404

    async def test_usage_stays_zero_in_simulation(self, api_client, sql_control_plane, register_tenant):
        tenant = await register_tenant()
        await _post_chat(api_client, tenant.handle, REQUEST)
        await sql_control_plane.pool.drain()

        usage = (await api_client.get(f"/api/v1/usage/{tenant.workspace.id}")).json()

        assert usage["tokens"] == 0
        assert usage["allowed"] is True
