from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Union

import pytest

from cerebrin_ai.agent_core.approval.gate import ApprovalGate
from cerebrin_ai.agent_core.budget.guard import BudgetGuard
from cerebrin_ai.agent_core.generation import GenerationService
from cerebrin_ai.agent_core.memory.resonance import ResonanceMemory
from cerebrin_ai.agent_core.pipeline import (
    OrchestratorDeps,
    OrchestratorSettings,
    PipelineOrchestrator,
    PipelineWorkerPool,
)
from cerebrin_ai.agent_core.routing.router import ProviderRouter
from cerebrin_ai.agent_core.schemas.domain import (
    CLOSED_DOCUMENT_STATUSES,
    Agent,
    ApprovalRequest,
    ApprovalStatus,
    AutonomyLevel,
    BudgetRule,
    ChatTurn,
    Document,
    DocumentKind,
    GenerationResult,
    HitlLevel,
    Identity,
    OutboundMessage,
    Pipeline,
    PipelineStatus,
    Platform,
    ResonanceEntry,
    TaskKind,
    UsageCounter,
    Workspace,
)
from cerebrin_ai.core.errors import ConflictError

# ---------------------------------------------------------------------------
# In-memory repositories
# ---------------------------------------------------------------------------


class _DirectoryRepo:
    def __init__(self) -> None:
        self.identities: Dict[str, Identity] = {}
        self.workspaces: List[Workspace] = []
        self.agents: Dict[str, Agent] = {}

    async def find_identity(self, handle: str) -> Optional[Identity]:
        return self.identities.get(handle)

    async def active_workspace(self, user_id: str) -> Optional[Workspace]:
        owned = [w for w in self.workspaces if w.owner_id == user_id]
        return max(owned, key=lambda w: w.created_at) if owned else None

    async def active_agent(self, user_id: str) -> Optional[Agent]:
        owned = [a for a in self.agents.values() if a.owner_id == user_id and a.is_active]
        return max(owned, key=lambda a: a.created_at) if owned else None

    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        return self.agents.get(agent_id)

    async def adjust_resonance_score(self, agent_id: str, delta: int) -> None:
        agent = self.agents.get(agent_id)
        if agent is not None:
            score = max(0, min(100, agent.resonance_score + delta))
            self.agents[agent_id] = agent.model_copy(update={"resonance_score": score})

    async def add_identity(self, identity: Identity) -> None:
        self.identities[identity.handle] = identity

    async def add_workspace(self, workspace: Workspace) -> None:
        self.workspaces.append(workspace)

    async def add_agent(self, agent: Agent) -> None:
        self.agents[agent.id] = agent


class _DocumentsRepo:
    def __init__(self) -> None:
        self.documents: List[Document] = []

    async def create(self, document: Document) -> None:
        self.documents.append(document)

    async def list(self, workspace_id: str, *, kind: DocumentKind, limit: int = 10) -> list[Document]:
        matching = [d for d in self.documents if d.workspace_id == workspace_id and d.kind == kind]
        return sorted(matching, key=lambda d: d.created_at, reverse=True)[:limit]

    async def count_open(self, workspace_id: str, *, kind: DocumentKind) -> int:
        return sum(
            1
            for d in self.documents
            if d.workspace_id == workspace_id and d.kind == kind and d.status not in CLOSED_DOCUMENT_STATUSES
        )

    async def update(
        self, document_id: str, *, status: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        for i, document in enumerate(self.documents):
            if document.id == document_id:
                changes: Dict[str, Any] = {"metadata": {**document.metadata, **(metadata or {})}}
                if status is not None:
                    changes["status"] = status
                self.documents[i] = document.model_copy(update=changes)
                return True
        return False

    def get(self, document_id: str) -> Document:
        return next(d for d in self.documents if d.id == document_id)

    def of_kind(self, kind: DocumentKind) -> List[Document]:
        return [d for d in self.documents if d.kind == kind]


class _PipelinesRepo:
    def __init__(self) -> None:
        self.by_id: Dict[str, Pipeline] = {}
        self.updates: List[Dict[str, Any]] = []

    async def create(self, pipeline: Pipeline) -> Pipeline:
        active = await self.active_for(pipeline.user_id, pipeline.workspace_id)
        if active is not None:
            raise ConflictError("active pipeline exists", existing=active)
        self.by_id[pipeline.id] = pipeline
        return pipeline

    async def get(self, pipeline_id: str) -> Optional[Pipeline]:
        return self.by_id.get(pipeline_id)

    async def active_for(self, user_id: str, workspace_id: str) -> Optional[Pipeline]:
        for p in self.by_id.values():
            if p.user_id == user_id and p.workspace_id == workspace_id and not p.status.is_terminal:
                return p
        return None

    async def find_recent(self, request_key: str, *, since: datetime) -> Optional[Pipeline]:
        matching = [p for p in self.by_id.values() if p.request_key == request_key and p.created_at >= since]
        return max(matching, key=lambda p: p.created_at) if matching else None

    async def update(
        self, pipeline_id: str, *, expected: Sequence[PipelineStatus], **changes: Any
    ) -> Optional[Pipeline]:
        current = self.by_id.get(pipeline_id)
        if current is None or current.status not in expected:
            return None
        self.updates.append(dict(changes))
        updated = current.model_copy(update={**changes, "updated_at": datetime.now(timezone.utc)})
        self.by_id[pipeline_id] = updated
        return updated


class _ApprovalsRepo:
    def __init__(self) -> None:
        self.by_id: Dict[str, ApprovalRequest] = {}

    async def create(self, approval: ApprovalRequest) -> None:
        self.by_id[approval.id] = approval

    async def get(self, approval_id: str) -> Optional[ApprovalRequest]:
        return self.by_id.get(approval_id)

    async def resolve(self, approval_id: str, *, status: ApprovalStatus, decided_by: Optional[str]) -> bool:
        approval = self.by_id.get(approval_id)
        if approval is None or approval.status != ApprovalStatus.pending:
            return False
        self.by_id[approval_id] = approval.model_copy(
            update={"status": status, "resolved_by": decided_by, "resolved_at": datetime.now(timezone.utc)}
        )
        return True

    async def list_pending(self, workspace_id: str, limit: int = 50) -> list[ApprovalRequest]:
        pending = [
            a for a in self.by_id.values() if a.workspace_id == workspace_id and a.status == ApprovalStatus.pending
        ]
        return sorted(pending, key=lambda a: a.created_at)[:limit]


class _UsageRepo:
    def __init__(self) -> None:
        self.counters: Dict[tuple[str, str], UsageCounter] = {}

    async def increment(self, workspace_id: str, period: str, *, tokens: int, cost_usd: float) -> None:
        current = await self.get(workspace_id, period)
        self.counters[(workspace_id, period)] = current.model_copy(
            update={"tokens": current.tokens + tokens, "cost_usd": current.cost_usd + cost_usd}
        )

    async def get(self, workspace_id: str, period: str) -> UsageCounter:
        return self.counters.get((workspace_id, period)) or UsageCounter(workspace_id=workspace_id, period=period)


class _BudgetRulesRepo:
    def __init__(self) -> None:
        self.rules: List[BudgetRule] = []

    async def list_active(self, workspace_id: str) -> list[BudgetRule]:
        return [r for r in self.rules if r.workspace_id == workspace_id and r.is_active]

    async def add(self, rule: BudgetRule) -> None:
        self.rules.append(rule)


class _ResonanceRepo:
    def __init__(self) -> None:
        self.entries: List[ResonanceEntry] = []

    async def append(self, entry: ResonanceEntry) -> None:
        self.entries.append(entry)

    async def search(self, workspace_id: str, terms: Sequence[str], limit: int = 50) -> list[ResonanceEntry]:
        found = [
            e
            for e in self.entries
            if e.workspace_id == workspace_id
            and any(t.lower() in e.topic.lower() or t.lower() in e.content.lower() for t in terms)
        ]
        return sorted(found, key=lambda e: e.created_at, reverse=True)[:limit]

    async def with_embeddings(self, workspace_id: str, limit: int = 500) -> list[ResonanceEntry]:
        found = [e for e in self.entries if e.workspace_id == workspace_id and e.embedding is not None]
        return sorted(found, key=lambda e: e.created_at, reverse=True)[:limit]


@dataclass
class FakeRepos:
    directory: _DirectoryRepo = field(default_factory=_DirectoryRepo)
    documents: _DocumentsRepo = field(default_factory=_DocumentsRepo)
    pipelines: _PipelinesRepo = field(default_factory=_PipelinesRepo)
    approvals: _ApprovalsRepo = field(default_factory=_ApprovalsRepo)
    usage: _UsageRepo = field(default_factory=_UsageRepo)
    budget_rules: _BudgetRulesRepo = field(default_factory=_BudgetRulesRepo)
    resonance: _ResonanceRepo = field(default_factory=_ResonanceRepo)


# ---------------------------------------------------------------------------
# Gateway and backends
# ---------------------------------------------------------------------------


class RecordingGateway:
    def __init__(self) -> None:
        self.sent: List[OutboundMessage] = []

    async def send(self, message: OutboundMessage) -> bool:
        self.sent.append(message)
        return True

    @property
    def texts(self) -> List[str]:
        return [m.text for m in self.sent]


Reply = Union[str, Exception]


class ScriptedBackend:
    """Backend answering from a script; an ``Exception`` entry is raised instead."""

    def __init__(
        self,
        name: str = "gemini",
        replies: Optional[List[Reply]] = None,
        *,
        responder: Optional[Callable[[TaskKind, str], Reply]] = None,
        tokens: int = 10,
        cost_per_token: float = 0.001,
        enabled: bool = True,
        delay: float = 0.0,
        approval_hint: bool = False,
    ) -> None:
        self.name = name
        self.replies: List[Reply] = list(replies or [])
        self.responder = responder
        self.tokens = tokens
        self.cost_per_token = cost_per_token
        self.enabled = enabled
        self.delay = delay
        self.approval_hint = approval_hint
        self.calls: List[Dict[str, Any]] = []

    def _next(self, task_kind: TaskKind, prompt: str) -> Reply:
        if self.responder is not None:
            return self.responder(task_kind, prompt)
        if self.replies:
            return self.replies.pop(0)
        return "Texto neutral de ejemplo."

    async def generate(
        self, task_kind: TaskKind, prompt: str, *, system_prompt: Optional[str] = None
    ) -> GenerationResult:
        self.calls.append({"task_kind": task_kind, "prompt": prompt, "system_prompt": system_prompt})
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self._next(task_kind, prompt)
        if isinstance(reply, Exception):
            raise reply
        return GenerationResult(
            text=reply,
            tokens_used=self.tokens,
            cost_usd=self.tokens * self.cost_per_token,
            backend=self.name,
            requires_approval_hint=self.approval_hint,
        )

    async def stream(
        self,
        task_kind: TaskKind,
        message: str,
        *,
        history: Sequence[ChatTurn] = (),
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[str]:
        self.calls.append({"task_kind": task_kind, "prompt": message, "system_prompt": system_prompt})
        reply = self._next(task_kind, message)
        if isinstance(reply, Exception):
            raise reply
        for word in reply.split(" "):
            yield word + " "


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def repos() -> FakeRepos:
    return FakeRepos()


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def make_backend() -> Callable[..., ScriptedBackend]:
    return ScriptedBackend


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend("gemini")


@pytest.fixture
def guard(repos: FakeRepos) -> BudgetGuard:
    return BudgetGuard(rules=repos.budget_rules, usage=repos.usage, period=lambda: "2026-10")


@pytest.fixture
def gate(repos: FakeRepos) -> ApprovalGate:
    return ApprovalGate(approvals=repos.approvals, directory=repos.directory)


@pytest.fixture
def generation(backend: ScriptedBackend, guard: BudgetGuard) -> GenerationService:
    return GenerationService(router=ProviderRouter(backends={backend.name: backend}), guard=guard)


@pytest.fixture
def memory(repos: FakeRepos) -> ResonanceMemory:
    return ResonanceMemory(entries=repos.resonance)


@pytest.fixture
def orchestrator_settings() -> OrchestratorSettings:
    return OrchestratorSettings(step_timeout_seconds=1.0)


@pytest.fixture
def orchestrator(
    repos: FakeRepos,
    gate: ApprovalGate,
    generation: GenerationService,
    gateway: RecordingGateway,
    memory: ResonanceMemory,
    orchestrator_settings: OrchestratorSettings,
) -> PipelineOrchestrator:
    # No pool: resumed pipelines run inline so tests can assert on the outcome.
    return PipelineOrchestrator(
        deps=OrchestratorDeps(
            pipelines=repos.pipelines,
            directory=repos.directory,
            gate=gate,
            generation=generation,
            gateway=gateway,
            memory=memory,
            documents=repos.documents,
            settings=orchestrator_settings,
        )
    )


@pytest.fixture
def pool() -> PipelineWorkerPool:
    return PipelineWorkerPool(max_concurrent=2)


@dataclass
class Tenant:
    handle: str
    user_id: str
    workspace: Workspace
    agent: Agent


@pytest.fixture
def make_tenant(repos: FakeRepos):
    """Register an identity, a workspace and an agent for one user."""

    async def _make(
        *,
        handle: str = "+5491100000000",
        user_id: str = "user-1",
        hitl: HitlLevel = HitlLevel.autonomous,
        autonomy: AutonomyLevel = AutonomyLevel.executor,
        platform: Platform = Platform.whatsapp,
    ) -> Tenant:
        workspace = Workspace(owner_id=user_id, name="Estudio")
        agent = Agent(
            workspace_id=workspace.id,
            owner_id=user_id,
            name="Lumen",
            hitl_level=hitl,
            autonomy_level=autonomy,
        )
        await repos.directory.add_identity(Identity(handle=handle, user_id=user_id, platform=platform))
        await repos.directory.add_workspace(workspace)
        await repos.directory.add_agent(agent)
        return Tenant(handle=handle, user_id=user_id, workspace=workspace, agent=agent)

    return _make
