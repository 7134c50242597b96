from __future__ import annotations

"""SQLAlchemy async repository implementations.

This module provides the SQL persistence implementation for the repository
interfaces defined in ``cerebrin_ai.agent_core.repos.interfaces``.

Usage
-----

- Create an async engine with ``create_engine``.
- Create tables with ``create_all`` (tests/dev; production uses the Alembic
  revision under ``alembic/versions``).
- Create a session factory with ``create_sessionmaker``.
- Build repository instances with ``build_sql_repos``.

Transaction model
-----------------

Each repository method opens an ``AsyncSession``, performs its operation and
commits. The invariants of the control plane are enforced with single
statements so they hold across processes:

- pipeline creation relies on the partial unique index over non-terminal
  rows and turns ``IntegrityError`` into ``ConflictError``;
- status transitions and approval resolution are ``UPDATE ... WHERE status``
  statements whose row count tells whether they applied;
- usage increments are ``UPDATE ... SET tokens = tokens + :n``.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cerebrin_ai.core.errors import ConflictError

from ..schemas.domain import (
    CLOSED_DOCUMENT_STATUSES,
    TERMINAL_PIPELINE_STATUSES,
    ActionKind,
    Agent,
    ApprovalRequest,
    ApprovalStatus,
    AutonomyLevel,
    BudgetRule,
    Document,
    DocumentKind,
    HitlLevel,
    Identity,
    Pipeline,
    PipelineStatus,
    PipelineStep,
    Platform,
    ResonanceEntry,
    UsageCounter,
    Workspace,
)
from .interfaces import (
    ApprovalRepository,
    BudgetRuleRepository,
    DirectoryRepository,
    DocumentRepository,
    PipelineRepository,
    ResonanceRepository,
    UsageRepository,
)
from .models import (
    AgentRow,
    ApprovalRow,
    Base,
    BudgetRuleRow,
    DocumentRow,
    IdentityRow,
    PipelineRow,
    ResonanceRow,
    UsageCounterRow,
    WorkspaceRow,
)


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Postgres URLs are normalized to the asyncpg driver, e.g. ``postgresql://``
    and ``postgres://`` become ``postgresql+asyncpg://``.
    """
    url = re.sub(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://", "postgresql+asyncpg://", db_url, count=1)
    return create_async_engine(url, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` with safe defaults for this project."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata (tests and local development)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Bulk UPDATEs here never touch objects loaded in the same session.
_NO_SYNC = {"synchronize_session": False}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo; everything is stored in UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


# ---------------------------------------------------------------------------
# Row <-> domain mapping
# ---------------------------------------------------------------------------


def _agent_from_row(row: AgentRow) -> Agent:
    return Agent(
        id=row.id,
        workspace_id=row.workspace_id,
        owner_id=row.owner_id,
        name=row.name,
        emoji=row.emoji,
        autonomy_level=AutonomyLevel(row.autonomy_level),
        hitl_level=HitlLevel(row.hitl_level),
        resonance_score=row.resonance_score,
        persona=row.persona,
        is_active=row.is_active,
        created_at=_aware(row.created_at),
    )


def _pipeline_from_row(row: PipelineRow) -> Pipeline:
    return Pipeline(
        id=row.id,
        workspace_id=row.workspace_id,
        user_id=row.user_id,
        agent_id=row.agent_id,
        request_text=row.request_text,
        request_key=row.request_key,
        channel=Platform(row.channel),
        reply_to=row.reply_to,
        status=PipelineStatus(row.status),
        current_step=row.current_step,
        step_index=row.step_index,
        revisions=row.revisions,
        plan_approved=row.plan_approved,
        steps=[PipelineStep.model_validate(s) for s in (row.steps or [])],
        project_id=row.project_id,
        awaiting_approval_id=row.awaiting_approval_id,
        result=row.result,
        failure_reason=row.failure_reason,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _approval_from_row(row: ApprovalRow) -> ApprovalRequest:
    return ApprovalRequest(
        id=row.id,
        workspace_id=row.workspace_id,
        agent_id=row.agent_id,
        pipeline_id=row.pipeline_id,
        action_kind=ActionKind(row.action_kind),
        entity_type=row.entity_type,
        payload=dict(row.payload or {}),
        target_id=row.target_id,
        title=row.title,
        status=ApprovalStatus(row.status),
        created_at=_aware(row.created_at),
        resolved_at=_aware(row.resolved_at),
        resolved_by=row.resolved_by,
    )


def _resonance_from_row(row: ResonanceRow) -> ResonanceEntry:
    return ResonanceEntry(
        id=row.id,
        workspace_id=row.workspace_id,
        agent_id=row.agent_id,
        topic=row.topic,
        content=row.content,
        embedding=list(row.embedding) if row.embedding is not None else None,
        created_at=_aware(row.created_at),
    )


def _pipeline_columns(changes: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for key, value in changes.items():
        if key == "steps":
            values[key] = [
                s.model_dump(mode="json") if isinstance(s, PipelineStep) else dict(s) for s in value
            ]
        else:
            values[key] = _enum_value(value)
    return values


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SqlDirectoryRepository(DirectoryRepository):
    """SQL implementation of ``DirectoryRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def find_identity(self, handle: str) -> Optional[Identity]:
        async with self.session_factory() as s:
            row = await s.get(IdentityRow, handle)
            if row is None:
                return None
            return Identity(
                handle=row.handle,
                user_id=row.user_id,
                platform=Platform(row.platform) if row.platform else None,
            )

    async def active_workspace(self, user_id: str) -> Optional[Workspace]:
        async with self.session_factory() as s:
            stmt = (
                select(WorkspaceRow)
                .where(WorkspaceRow.owner_id == user_id)
                .order_by(WorkspaceRow.created_at.desc())
                .limit(1)
            )
            row = (await s.execute(stmt)).scalar_one_or_none()
            if row is None:
                return None
            return Workspace(id=row.id, owner_id=row.owner_id, name=row.name, created_at=_aware(row.created_at))

    async def active_agent(self, user_id: str) -> Optional[Agent]:
        async with self.session_factory() as s:
            stmt = (
                select(AgentRow)
                .where(AgentRow.owner_id == user_id, AgentRow.is_active.is_(True))
                .order_by(AgentRow.created_at.desc())
                .limit(1)
            )
            row = (await s.execute(stmt)).scalar_one_or_none()
            return _agent_from_row(row) if row is not None else None

    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        async with self.session_factory() as s:
            row = await s.get(AgentRow, agent_id)
            return _agent_from_row(row) if row is not None else None

    async def adjust_resonance_score(self, agent_id: str, delta: int) -> None:
        """
        Shift an agent's resonance score in a single statement.

        The score is clamped to 0..100 inside the UPDATE so concurrent
        adjustments never overwrite each other.
        """
        shifted = AgentRow.resonance_score + delta
        clamped = func.max(0, func.min(100, shifted))
        async with self.session_factory() as s:
            if s.bind.dialect.name == "postgresql":
                clamped = func.greatest(0, func.least(100, shifted))
            await s.execute(
                update(AgentRow).where(AgentRow.id == agent_id).values(resonance_score=clamped),
                execution_options=_NO_SYNC,
            )
            await s.commit()

    async def add_identity(self, identity: Identity) -> None:
        async with self.session_factory() as s:
            s.add(
                IdentityRow(
                    handle=identity.handle,
                    user_id=identity.user_id,
                    platform=_enum_value(identity.platform) if identity.platform else None,
                )
            )
            await s.commit()

    async def add_workspace(self, workspace: Workspace) -> None:
        async with self.session_factory() as s:
            s.add(
                WorkspaceRow(
                    id=workspace.id,
                    owner_id=workspace.owner_id,
                    name=workspace.name,
                    created_at=workspace.created_at,
                )
            )
            await s.commit()

    async def add_agent(self, agent: Agent) -> None:
        async with self.session_factory() as s:
            s.add(
                AgentRow(
                    id=agent.id,
                    workspace_id=agent.workspace_id,
                    owner_id=agent.owner_id,
                    name=agent.name,
                    emoji=agent.emoji,
                    autonomy_level=_enum_value(agent.autonomy_level),
                    hitl_level=_enum_value(agent.hitl_level),
                    resonance_score=agent.resonance_score,
                    persona=agent.persona,
                    is_active=agent.is_active,
                    created_at=agent.created_at,
                )
            )
            await s.commit()


@dataclass(frozen=True)
class SqlDocumentRepository(DocumentRepository):
    """SQL implementation of ``DocumentRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, document: Document) -> None:
        async with self.session_factory() as s:
            s.add(
                DocumentRow(
                    id=document.id,
                    workspace_id=document.workspace_id,
                    user_id=document.user_id,
                    title=document.title,
                    kind=_enum_value(document.kind),
                    status=document.status,
                    doc_metadata=dict(document.metadata),
                    created_at=document.created_at,
                )
            )
            await s.commit()

    async def list(self, workspace_id: str, *, kind: DocumentKind, limit: int = 10) -> list[Document]:
        async with self.session_factory() as s:
            stmt = (
                select(DocumentRow)
                .where(DocumentRow.workspace_id == workspace_id, DocumentRow.kind == _enum_value(kind))
                .order_by(DocumentRow.created_at.desc())
                .limit(limit)
            )
            rows = (await s.execute(stmt)).scalars().all()
            return [
                Document(
                    id=row.id,
                    workspace_id=row.workspace_id,
                    user_id=row.user_id,
                    title=row.title,
                    kind=DocumentKind(row.kind),
                    status=row.status,
                    metadata=dict(row.doc_metadata or {}),
                    created_at=_aware(row.created_at),
                )
                for row in rows
            ]

    async def count_open(self, workspace_id: str, *, kind: DocumentKind) -> int:
        async with self.session_factory() as s:
            stmt = select(func.count(DocumentRow.id)).where(
                DocumentRow.workspace_id == workspace_id,
                DocumentRow.kind == _enum_value(kind),
                DocumentRow.status.not_in(CLOSED_DOCUMENT_STATUSES),
            )
            return int((await s.execute(stmt)).scalar_one())

    async def update(
        self,
        document_id: str,
        *,
        status: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> bool:
        async with self.session_factory() as s:
            row = await s.get(DocumentRow, document_id)
            if row is None:
                return False
            if status is not None:
                row.status = status
            if metadata:
                # Reassign so the JSON column is flagged as changed.
                row.doc_metadata = {**(row.doc_metadata or {}), **metadata}
            await s.commit()
            return True


@dataclass(frozen=True)
class SqlPipelineRepository(PipelineRepository):
    """SQL implementation of ``PipelineRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, pipeline: Pipeline) -> Pipeline:
        """
        Insert a pipeline, relying on the partial unique index for the
        at-most-one-active rule.

        Raises:
            ConflictError: a non-terminal pipeline already exists for the
                (user, workspace) pair.
        """
        async with self.session_factory() as s:
            s.add(
                PipelineRow(
                    id=pipeline.id,
                    workspace_id=pipeline.workspace_id,
                    user_id=pipeline.user_id,
                    agent_id=pipeline.agent_id,
                    request_text=pipeline.request_text,
                    request_key=pipeline.request_key,
                    channel=_enum_value(pipeline.channel),
                    reply_to=pipeline.reply_to,
                    status=_enum_value(pipeline.status),
                    current_step=pipeline.current_step,
                    step_index=pipeline.step_index,
                    revisions=pipeline.revisions,
                    plan_approved=pipeline.plan_approved,
                    steps=[step.model_dump(mode="json") for step in pipeline.steps],
                    project_id=pipeline.project_id,
                    awaiting_approval_id=pipeline.awaiting_approval_id,
                    result=pipeline.result,
                    failure_reason=pipeline.failure_reason,
                    created_at=pipeline.created_at,
                    updated_at=pipeline.updated_at,
                )
            )
            try:
                await s.commit()
            except IntegrityError:
                await s.rollback()
                existing = await self.active_for(pipeline.user_id, pipeline.workspace_id)
                raise ConflictError(
                    f"An active pipeline already exists for user '{pipeline.user_id}' "
                    f"in workspace '{pipeline.workspace_id}'",
                    existing=existing,
                ) from None
        return pipeline

    async def get(self, pipeline_id: str) -> Optional[Pipeline]:
        async with self.session_factory() as s:
            row = await s.get(PipelineRow, pipeline_id)
            return _pipeline_from_row(row) if row is not None else None

    async def active_for(self, user_id: str, workspace_id: str) -> Optional[Pipeline]:
        async with self.session_factory() as s:
            stmt = (
                select(PipelineRow)
                .where(
                    PipelineRow.user_id == user_id,
                    PipelineRow.workspace_id == workspace_id,
                    PipelineRow.status.not_in(TERMINAL_PIPELINE_STATUSES),
                )
                .order_by(PipelineRow.created_at.desc())
                .limit(1)
            )
            row = (await s.execute(stmt)).scalar_one_or_none()
            return _pipeline_from_row(row) if row is not None else None

    async def find_recent(self, request_key: str, *, since: datetime) -> Optional[Pipeline]:
        async with self.session_factory() as s:
            stmt = (
                select(PipelineRow)
                .where(PipelineRow.request_key == request_key, PipelineRow.created_at >= since)
                .order_by(PipelineRow.created_at.desc())
                .limit(1)
            )
            row = (await s.execute(stmt)).scalar_one_or_none()
            return _pipeline_from_row(row) if row is not None else None

    async def update(
        self,
        pipeline_id: str,
        *,
        expected: Sequence[PipelineStatus],
        **changes: Any,
    ) -> Optional[Pipeline]:
        values = _pipeline_columns(changes)
        values["updated_at"] = _utc_now()
        async with self.session_factory() as s:
            stmt = (
                update(PipelineRow)
                .where(
                    PipelineRow.id == pipeline_id,
                    PipelineRow.status.in_([_enum_value(status) for status in expected]),
                )
                .values(**values)
            )
            res = await s.execute(stmt, execution_options=_NO_SYNC)
            await s.commit()
            if res.rowcount != 1:
                return None
        return await self.get(pipeline_id)


@dataclass(frozen=True)
class SqlApprovalRepository(ApprovalRepository):
    """SQL implementation of ``ApprovalRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, approval: ApprovalRequest) -> None:
        async with self.session_factory() as s:
            s.add(
                ApprovalRow(
                    id=approval.id,
                    workspace_id=approval.workspace_id,
                    agent_id=approval.agent_id,
                    pipeline_id=approval.pipeline_id,
                    action_kind=_enum_value(approval.action_kind),
                    entity_type=approval.entity_type,
                    payload=dict(approval.payload),
                    target_id=approval.target_id,
                    title=approval.title,
                    status=_enum_value(approval.status),
                    created_at=approval.created_at,
                    resolved_at=approval.resolved_at,
                    resolved_by=approval.resolved_by,
                )
            )
            await s.commit()

    async def get(self, approval_id: str) -> Optional[ApprovalRequest]:
        async with self.session_factory() as s:
            row = await s.get(ApprovalRow, approval_id)
            return _approval_from_row(row) if row is not None else None

    async def resolve(self, approval_id: str, *, status: ApprovalStatus, decided_by: Optional[str]) -> bool:
        """
        Resolve a pending approval with a conditional UPDATE.

        Two concurrent resolutions of the same request cannot both match
        ``status = 'pending'``; the loser sees a row count of zero.
        """
        async with self.session_factory() as s:
            stmt = (
                update(ApprovalRow)
                .where(ApprovalRow.id == approval_id, ApprovalRow.status == ApprovalStatus.pending.value)
                .values(status=_enum_value(status), resolved_by=decided_by, resolved_at=_utc_now())
            )
            res = await s.execute(stmt, execution_options=_NO_SYNC)
            await s.commit()
            return res.rowcount == 1

    async def list_pending(self, workspace_id: str, limit: int = 50) -> list[ApprovalRequest]:
        async with self.session_factory() as s:
            stmt = (
                select(ApprovalRow)
                .where(ApprovalRow.workspace_id == workspace_id, ApprovalRow.status == ApprovalStatus.pending.value)
                .order_by(ApprovalRow.created_at.asc())
                .limit(limit)
            )
            rows = (await s.execute(stmt)).scalars().all()
            return [_approval_from_row(row) for row in rows]


@dataclass(frozen=True)
class SqlUsageRepository(UsageRepository):
    """SQL implementation of ``UsageRepository`` (additive counters)."""

    session_factory: async_sessionmaker[AsyncSession]

    def _increment_stmt(self, workspace_id: str, period: str, tokens: int, cost_usd: float):
        return (
            update(UsageCounterRow)
            .where(UsageCounterRow.workspace_id == workspace_id, UsageCounterRow.period == period)
            .values(
                tokens=UsageCounterRow.tokens + tokens,
                cost_usd=UsageCounterRow.cost_usd + cost_usd,
            )
        )

    async def increment(self, workspace_id: str, period: str, *, tokens: int, cost_usd: float) -> None:
        """
        Add to the period counters without reading them first.

        The first increment of a period inserts the row; if a concurrent
        writer inserted it in between, the unique constraint fires and the
        increment is retried as an UPDATE.
        """
        stmt = self._increment_stmt(workspace_id, period, tokens, cost_usd)
        async with self.session_factory() as s:
            res = await s.execute(stmt, execution_options=_NO_SYNC)
            if res.rowcount == 1:
                await s.commit()
                return
            s.add(UsageCounterRow(workspace_id=workspace_id, period=period, tokens=tokens, cost_usd=cost_usd))
            try:
                await s.commit()
                return
            except IntegrityError:
                await s.rollback()
        async with self.session_factory() as s:
            await s.execute(stmt, execution_options=_NO_SYNC)
            await s.commit()

    async def get(self, workspace_id: str, period: str) -> UsageCounter:
        async with self.session_factory() as s:
            stmt = select(UsageCounterRow).where(
                UsageCounterRow.workspace_id == workspace_id, UsageCounterRow.period == period
            )
            row = (await s.execute(stmt)).scalar_one_or_none()
            if row is None:
                return UsageCounter(workspace_id=workspace_id, period=period)
            return UsageCounter(workspace_id=workspace_id, period=period, tokens=row.tokens, cost_usd=row.cost_usd)


@dataclass(frozen=True)
class SqlBudgetRuleRepository(BudgetRuleRepository):
    """SQL implementation of ``BudgetRuleRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def list_active(self, workspace_id: str) -> list[BudgetRule]:
        async with self.session_factory() as s:
            stmt = select(BudgetRuleRow).where(
                BudgetRuleRow.workspace_id == workspace_id, BudgetRuleRow.is_active.is_(True)
            )
            rows = (await s.execute(stmt)).scalars().all()
            return [
                BudgetRule(
                    id=row.id,
                    workspace_id=row.workspace_id,
                    max_tokens_per_period=row.max_tokens_per_period,
                    max_usd_per_period=row.max_usd_per_period,
                    is_active=row.is_active,
                )
                for row in rows
            ]

    async def add(self, rule: BudgetRule) -> None:
        async with self.session_factory() as s:
            s.add(
                BudgetRuleRow(
                    id=rule.id,
                    workspace_id=rule.workspace_id,
                    max_tokens_per_period=rule.max_tokens_per_period,
                    max_usd_per_period=rule.max_usd_per_period,
                    is_active=rule.is_active,
                )
            )
            await s.commit()


@dataclass(frozen=True)
class SqlResonanceRepository(ResonanceRepository):
    """SQL implementation of ``ResonanceRepository`` (append-only)."""

    session_factory: async_sessionmaker[AsyncSession]

    async def append(self, entry: ResonanceEntry) -> None:
        async with self.session_factory() as s:
            s.add(
                ResonanceRow(
                    id=entry.id,
                    workspace_id=entry.workspace_id,
                    agent_id=entry.agent_id,
                    topic=entry.topic,
                    content=entry.content,
                    embedding=list(entry.embedding) if entry.embedding is not None else None,
                    created_at=entry.created_at,
                )
            )
            await s.commit()

    async def search(self, workspace_id: str, terms: Sequence[str], limit: int = 50) -> list[ResonanceEntry]:
        if not terms:
            return []
        clauses = []
        for term in terms:
            pattern = f"%{term}%"
            clauses.append(ResonanceRow.topic.ilike(pattern))
            clauses.append(ResonanceRow.content.ilike(pattern))
        async with self.session_factory() as s:
            stmt = (
                select(ResonanceRow)
                .where(ResonanceRow.workspace_id == workspace_id, or_(*clauses))
                .order_by(ResonanceRow.created_at.desc())
                .limit(limit)
            )
            rows = (await s.execute(stmt)).scalars().all()
            return [_resonance_from_row(row) for row in rows]

    async def with_embeddings(self, workspace_id: str, limit: int = 500) -> list[ResonanceEntry]:
        async with self.session_factory() as s:
            stmt = (
                select(ResonanceRow)
                .where(ResonanceRow.workspace_id == workspace_id, ResonanceRow.embedding.is_not(None))
                .order_by(ResonanceRow.created_at.desc())
                .limit(limit)
            )
            rows = (await s.execute(stmt)).scalars().all()
            return [_resonance_from_row(row) for row in rows]


@dataclass(frozen=True)
class SqlRepoBundle:
    """Convenience bundle of all SQL repositories for dependency injection."""

    directory: SqlDirectoryRepository
    documents: SqlDocumentRepository
    pipelines: SqlPipelineRepository
    approvals: SqlApprovalRepository
    usage: SqlUsageRepository
    budget_rules: SqlBudgetRuleRepository
    resonance: SqlResonanceRepository


def build_sql_repos(*, session_factory: async_sessionmaker[AsyncSession]) -> SqlRepoBundle:
    """Build a ``SqlRepoBundle`` from a session factory."""
    return SqlRepoBundle(
        directory=SqlDirectoryRepository(session_factory=session_factory),
        documents=SqlDocumentRepository(session_factory=session_factory),
        pipelines=SqlPipelineRepository(session_factory=session_factory),
        approvals=SqlApprovalRepository(session_factory=session_factory),
        usage=SqlUsageRepository(session_factory=session_factory),
        budget_rules=SqlBudgetRuleRepository(session_factory=session_factory),
        resonance=SqlResonanceRepository(session_factory=session_factory),
    )
