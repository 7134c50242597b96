"""Fixtures serving the FastAPI app on top of a SQLite-backed control plane."""

import os

# The server module binds its engine at import time.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from httpx import ASGITransport, AsyncClient

from cerebrin_ai.server.core.config import Settings
from cerebrin_ai.server.services.control_plane import build_control_plane, get_control_plane

WEBHOOK_SECRET = "e2e-secret"


@pytest.fixture
def e2e_settings() -> Settings:
    return Settings(_env_file=None, simulation_mode=True, chat_webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def sql_control_plane(e2e_settings, session_factory, recording_gateway):
    return build_control_plane(e2e_settings, session_factory, backends={}, gateway=recording_gateway)


@pytest.fixture
async def api_client(sql_control_plane):
    from cerebrin_ai.server.main import app

    app.dependency_overrides[get_control_plane] = lambda: sql_control_plane
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    try:
        async with AsyncClient(transport=transport, base_url="http://localhost") as client:
            yield client
    finally:
        await sql_control_plane.pool.drain()
        app.dependency_overrides.pop(get_control_plane, None)
