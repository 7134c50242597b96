from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cerebrin_ai.agent_core.approval.gate import ApprovalGate
from cerebrin_ai.agent_core.backends import GenerativeBackend, PydanticAIBackend
from cerebrin_ai.agent_core.budget.guard import BudgetGuard
from cerebrin_ai.agent_core.generation import GenerationService
from cerebrin_ai.agent_core.intent.router import IntentRouter
from cerebrin_ai.agent_core.memory.resonance import ResonanceMemory
from cerebrin_ai.agent_core.pipeline import (
    OrchestratorDeps,
    OrchestratorSettings,
    PipelineOrchestrator,
    PipelineWorkerPool,
)
from cerebrin_ai.agent_core.repos.sql import SqlRepoBundle, build_sql_repos
from cerebrin_ai.agent_core.routing.router import ProviderRouter
from cerebrin_ai.core.logging_config import get_logger
from cerebrin_ai.gateway.client import ChatGateway, HttpChatGateway, NullChatGateway
from cerebrin_ai.server.core.config import Settings

logger = get_logger(__name__)


@dataclass
class ControlPlane:
    """
    Every long-lived collaborator of the server process, wired once.

    API endpoints reach the orchestrator, the approval gate and the intent
    router through this bundle.
    """

    settings: Settings
    repos: SqlRepoBundle
    guard: BudgetGuard
    gate: ApprovalGate
    router: ProviderRouter
    generation: GenerationService
    memory: ResonanceMemory
    gateway: ChatGateway
    pool: PipelineWorkerPool
    orchestrator: PipelineOrchestrator
    intent_router: IntentRouter

    async def aclose(self) -> None:
        """Wait for in-flight pipelines, then release the gateway client."""
        await self.pool.drain()
        close = getattr(self.gateway, "aclose", None)
        if close is not None:
            await close()


def build_backends(settings: Settings) -> Dict[str, GenerativeBackend]:
    """
    Build the generative backends enabled by configuration.

    pydantic_ai reads provider keys from the environment, so keys that only
    live in the ``.env`` file are exported before the models are resolved.
    """
    backends: Dict[str, GenerativeBackend] = {}
    gemini = settings.gemini
    if gemini.api_key:
        os.environ.setdefault("GEMINI_API_KEY", gemini.api_key)
    backends["gemini"] = PydanticAIBackend(
        "gemini", gemini.model, cost_per_token=gemini.cost_per_token, enabled=gemini.available
    )

    groq = settings.groq
    if groq.api_key:
        os.environ.setdefault("GROQ_API_KEY", groq.api_key)
    backends["groq"] = PydanticAIBackend("groq", groq.model, cost_per_token=groq.cost_per_token, enabled=groq.available)

    enabled = [name for name, backend in backends.items() if backend.enabled]
    logger.info(f"Generative backends enabled: {enabled or 'none'}")
    return backends


def build_gateway(settings: Settings) -> ChatGateway:
    gateway = settings.gateway
    if not gateway.url:
        logger.warning("CHAT_GATEWAY_URL is not set; outbound chat messages will be dropped")
        return NullChatGateway()
    return HttpChatGateway(gateway.url, api_key=gateway.api_key, timeout=gateway.timeout)


def build_control_plane(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    backends: Optional[Dict[str, GenerativeBackend]] = None,
    gateway: Optional[ChatGateway] = None,
) -> ControlPlane:
    """
    Wire the control plane from settings and a database session factory.

    Args:
        settings: Application settings.
        session_factory: Session factory bound to the control plane database.
        backends: Override the configured generative backends.
        gateway: Override the configured chat gateway client.
    """
    repos = build_sql_repos(session_factory=session_factory)
    guard = BudgetGuard(rules=repos.budget_rules, usage=repos.usage)
    gate = ApprovalGate(approvals=repos.approvals, directory=repos.directory)
    router = ProviderRouter(backends=backends if backends is not None else build_backends(settings))
    generation = GenerationService(router=router, guard=guard, simulation_mode=settings.simulation_mode)
    memory = ResonanceMemory(entries=repos.resonance)
    chat_gateway = gateway if gateway is not None else build_gateway(settings)

    pipeline_config = settings.pipeline
    pool = PipelineWorkerPool(max_concurrent=pipeline_config.max_concurrent)
    orchestrator = PipelineOrchestrator(
        deps=OrchestratorDeps(
            pipelines=repos.pipelines,
            directory=repos.directory,
            gate=gate,
            generation=generation,
            gateway=chat_gateway,
            memory=memory,
            documents=repos.documents,
            settings=OrchestratorSettings(
                step_timeout_seconds=pipeline_config.step_timeout_seconds,
                dedupe_window_seconds=pipeline_config.dedupe_window_seconds,
                max_revisions=pipeline_config.max_revisions,
                progress_notifications=pipeline_config.progress_notifications,
            ),
        ),
        pool=pool,
    )
    intent_router = IntentRouter(
        directory=repos.directory,
        documents=repos.documents,
        gate=gate,
        guard=guard,
        generation=generation,
        orchestrator=orchestrator,
        pool=pool,
        gateway=chat_gateway,
    )
    if settings.simulation_mode:
        logger.warning("SIMULATION_MODE is on; generation returns canned replies at zero cost")
    return ControlPlane(
        settings=settings,
        repos=repos,
        guard=guard,
        gate=gate,
        router=router,
        generation=generation,
        memory=memory,
        gateway=chat_gateway,
        pool=pool,
        orchestrator=orchestrator,
        intent_router=intent_router,
    )


_control_plane: Optional[ControlPlane] = None


def get_control_plane() -> ControlPlane:
    global _control_plane
    if _control_plane is None:
        from cerebrin_ai.server.core.config import settings
        from cerebrin_ai.server.core.database import async_session_maker

        _control_plane = build_control_plane(settings, async_session_maker)
    return _control_plane


def set_control_plane(control_plane: Optional[ControlPlane]) -> None:
    """Replace the process-wide control plane; ``None`` resets it."""
    global _control_plane
    _control_plane = control_plane
