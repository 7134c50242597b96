"""Shared fixtures for end-to-end tests against a file-backed SQLite database."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

import pytest

from cerebrin_ai.agent_core.repos.sql import (
    SqlRepoBundle,
    build_sql_repos,
    create_all,
    create_engine,
    create_sessionmaker,
)
from cerebrin_ai.agent_core.schemas.domain import (
    Agent,
    AutonomyLevel,
    HitlLevel,
    Identity,
    OutboundMessage,
    Platform,
    Workspace,
)


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path}/cerebrin.sqlite"


@pytest.fixture
async def db_engine(database_url: str):
    engine = create_engine(database_url)
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_sessionmaker(db_engine)


@pytest.fixture
def sql_repos(session_factory) -> SqlRepoBundle:
    return build_sql_repos(session_factory=session_factory)


class RecordingGateway:
    """Chat gateway double that keeps every outbound message."""

    def __init__(self) -> None:
        self.sent: List[OutboundMessage] = []

    async def send(self, message: OutboundMessage) -> bool:
        self.sent.append(message)
        return True

    @property
    def texts(self) -> List[str]:
        return [m.text for m in self.sent]


@pytest.fixture
def recording_gateway() -> RecordingGateway:
    return RecordingGateway()


@dataclass(frozen=True)
class SqlTenant:
    handle: str
    user_id: str
    workspace: Workspace
    agent: Agent


@pytest.fixture
def register_tenant(sql_repos: SqlRepoBundle):
    """Persist an identity, a workspace and an agent for one user."""

    async def _register(
        *,
        handle: str = "+5491155550000",
        user_id: str = "user-e2e",
        hitl: HitlLevel = HitlLevel.autonomous,
        autonomy: AutonomyLevel = AutonomyLevel.executor,
        resonance_score: int = 70,
    ) -> SqlTenant:
        workspace = Workspace(owner_id=user_id, name="Redacción")
        agent = Agent(
            workspace_id=workspace.id,
            owner_id=user_id,
            name="Lumen",
            emoji="🌟",
            hitl_level=hitl,
            autonomy_level=autonomy,
            resonance_score=resonance_score,
        )
        await sql_repos.directory.add_identity(Identity(handle=handle, user_id=user_id, platform=Platform.whatsapp))
        await sql_repos.directory.add_workspace(workspace)
        await sql_repos.directory.add_agent(agent)
        return SqlTenant(handle=handle, user_id=user_id, workspace=workspace, agent=agent)

    return _register
