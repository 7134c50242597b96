from __future__ import annotations

"""SQLAlchemy ORM models for control plane persistence.

These ORM models define the SQL schema used by the SQL repository
implementation in ``cerebrin_ai.agent_core.repos.sql``.

Design
------

- Directory tables (identities, workspaces, agents) are owned by account
  linking and configuration; the control plane reads them.
- ``cb_pipelines`` carries a partial unique index over non-terminal rows so
  the store itself refuses a second active pipeline per (user, workspace).
- ``cb_usage_counters`` has one row per (workspace, period) updated with
  additive ``UPDATE ... SET tokens = tokens + :n`` statements.
- Approvals are resolved by a conditional update on ``status = 'pending'``.
- Resonance entries and documents are append-only.

JSON columns use JSONB on PostgreSQL and plain JSON elsewhere (SQLite in
tests). Table names are prefixed with ``cb_`` to avoid collisions in shared
databases.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JsonType = JSON().with_variant(JSONB(), "postgresql")
NullableJsonType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")

_ACTIVE_PIPELINE_WHERE = text("status NOT IN ('completed', 'failed')")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class IdentityRow(Base):
    """Row model for ``cb_identities``: external chat handle → user id."""

    __tablename__ = "cb_identities"

    handle: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    platform: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)


class WorkspaceRow(Base):
    """Row model for ``cb_workspaces``."""

    __tablename__ = "cb_workspaces"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(256))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class AgentRow(Base):
    """Row model for ``cb_agents``.

    ``resonance_score`` is the only column the control plane mutates; it is
    adjusted when approvals raised by the agent are resolved.
    """

    __tablename__ = "cb_agents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    workspace_id: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True)
    owner_id: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True)

    name: Mapped[str] = mapped_column(String(128))
    emoji: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    autonomy_level: Mapped[str] = mapped_column(String(32))
    hitl_level: Mapped[str] = mapped_column(String(32))
    resonance_score: Mapped[int] = mapped_column(Integer, default=70)
    persona: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class DocumentRow(Base):
    """Row model for ``cb_documents`` (media references, tasks, projects)."""

    __tablename__ = "cb_documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    workspace_id: Mapped[str] = mapped_column(String(64), index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    title: Mapped[str] = mapped_column(String(512))
    kind: Mapped[str] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(String(32))
    doc_metadata: Mapped[Dict[str, Any]] = mapped_column("metadata", JsonType, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class PipelineRow(Base):
    """Row model for ``cb_pipelines``.

    ``steps`` stores the ordered step records (role, task kind, status,
    output) as JSON; together with ``step_index`` it is the checkpoint a
    parked pipeline resumes from.
    """

    __tablename__ = "cb_pipelines"
    __table_args__ = (
        Index(
            "uq_cb_pipelines_active_per_user",
            "user_id",
            "workspace_id",
            unique=True,
            sqlite_where=_ACTIVE_PIPELINE_WHERE,
            postgresql_where=_ACTIVE_PIPELINE_WHERE,
        ),
        Index("ix_cb_pipelines_request_key_created", "request_key", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    workspace_id: Mapped[str] = mapped_column(String(64), index=True)
    user_id: Mapped[str] = mapped_column(String(64))
    agent_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    request_text: Mapped[str] = mapped_column(Text)
    request_key: Mapped[str] = mapped_column(String(128))
    channel: Mapped[str] = mapped_column(String(32))
    reply_to: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    status: Mapped[str] = mapped_column(String(32))
    current_step: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    step_index: Mapped[int] = mapped_column(Integer, default=0)
    revisions: Mapped[int] = mapped_column(Integer, default=0)
    plan_approved: Mapped[bool] = mapped_column(Boolean, default=False)
    steps: Mapped[List[Dict[str, Any]]] = mapped_column(JsonType, default=list)
    project_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    awaiting_approval_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    result: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ApprovalRow(Base):
    """Row model for ``cb_approvals``."""

    __tablename__ = "cb_approvals"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    workspace_id: Mapped[str] = mapped_column(String(64), index=True)
    agent_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    pipeline_id: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True)

    action_kind: Mapped[str] = mapped_column(String(32))
    entity_type: Mapped[str] = mapped_column(String(64))
    payload: Mapped[Dict[str, Any]] = mapped_column(JsonType, default=dict)
    target_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    title: Mapped[str] = mapped_column(String(256), default="")

    status: Mapped[str] = mapped_column(String(16), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)


class UsageCounterRow(Base):
    """Row model for ``cb_usage_counters``: running totals per workspace and period."""

    __tablename__ = "cb_usage_counters"
    __table_args__ = (UniqueConstraint("workspace_id", "period", name="uq_cb_usage_counters_workspace_period"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    workspace_id: Mapped[str] = mapped_column(String(64))
    period: Mapped[str] = mapped_column(String(7))
    tokens: Mapped[int] = mapped_column(Integer, default=0)
    cost_usd: Mapped[float] = mapped_column(Float, default=0.0)


class BudgetRuleRow(Base):
    """Row model for ``cb_budget_rules``."""

    __tablename__ = "cb_budget_rules"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    workspace_id: Mapped[str] = mapped_column(String(64), index=True)
    max_tokens_per_period: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_usd_per_period: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class ResonanceRow(Base):
    """Row model for ``cb_resonance_entries`` (append-only)."""

    __tablename__ = "cb_resonance_entries"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    workspace_id: Mapped[str] = mapped_column(String(64), index=True)
    agent_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    topic: Mapped[str] = mapped_column(String(256))
    content: Mapped[str] = mapped_column(Text)
    embedding: Mapped[Optional[List[float]]] = mapped_column(NullableJsonType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
