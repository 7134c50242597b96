import os
from typing import AsyncGenerator
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test database URL before importing app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

WEBHOOK_SECRET = "s3cret"


@pytest.fixture
def server_settings():
    from cerebrin_ai.server.core.config import Settings

    return Settings(_env_file=None, chat_webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def control_plane(repos, guard, gate, generation, memory, gateway, pool, server_settings):
    """A control plane wired from the in-memory repositories."""
    from cerebrin_ai.agent_core.intent.router import IntentRouter
    from cerebrin_ai.agent_core.pipeline import OrchestratorDeps, PipelineOrchestrator
    from cerebrin_ai.server.services.control_plane import ControlPlane

    orchestrator = PipelineOrchestrator(
        deps=OrchestratorDeps(
            pipelines=repos.pipelines,
            directory=repos.directory,
            gate=gate,
            generation=generation,
            gateway=gateway,
            memory=memory,
            documents=repos.documents,
        ),
        pool=pool,
    )
    return ControlPlane(
        settings=server_settings,
        repos=repos,
        guard=guard,
        gate=gate,
        router=generation.router,
        generation=generation,
        memory=memory,
        gateway=gateway,
        pool=pool,
        orchestrator=orchestrator,
        intent_router=IntentRouter(
            directory=repos.directory,
            documents=repos.documents,
            gate=gate,
            guard=guard,
            generation=generation,
            orchestrator=orchestrator,
            pool=pool,
            gateway=gateway,
        ),
    )


@pytest_asyncio.fixture(name="client")
async def client_fixture(control_plane) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client with mocked lifespan and overridden dependencies."""
    from cerebrin_ai.server.main import app
    from cerebrin_ai.server.services.control_plane import get_control_plane

    app.dependency_overrides[get_control_plane] = lambda: control_plane

    # Mock the lifespan to prevent database initialization during tests
    async def mock_lifespan(app):
        yield

    with patch("cerebrin_ai.server.main.lifespan", mock_lifespan):
        async with AsyncClient(
            transport=ASGITransport(app=app, raise_app_exceptions=False), base_url="http://localhost"
        ) as client:
            yield client

    await control_plane.pool.drain()
    app.dependency_overrides.clear()
