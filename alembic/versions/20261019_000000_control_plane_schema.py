"""Control plane schema for Cerebrin AI

Revision ID: 20261019_000000
Revises: None
Create Date: 2026-10-19 00:00:00.000000

Creates every table the control plane reads or writes:
- Directory tables (identities, workspaces, agents)
- Documents (media references, tasks)
- Pipelines, with a partial unique index allowing one non-terminal pipeline
  per (user, workspace)
- Approvals, usage counters, budget rules and resonance entries

Revision format: YYYYMMDD_HHMMSS_description

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261019_000000"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(JSONB(), "postgresql")
ACTIVE_PIPELINE_WHERE = sa.text("status NOT IN ('completed', 'failed')")


def upgrade() -> None:
    """Create all control plane tables."""

    op.create_table(
        "cb_identities",
        sa.Column("handle", sa.String(128), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("platform", sa.String(32), nullable=True),
        sa.PrimaryKeyConstraint("handle"),
        sa.Index("ix_cb_identities_user_id", "user_id"),
    )

    op.create_table(
        "cb_workspaces",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_cb_workspaces_owner_id", "owner_id"),
    )

    op.create_table(
        "cb_agents",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("workspace_id", sa.String(64), nullable=True),
        sa.Column("owner_id", sa.String(64), nullable=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("emoji", sa.String(16), nullable=True),
        sa.Column("autonomy_level", sa.String(32), nullable=False),
        sa.Column("hitl_level", sa.String(32), nullable=False),
        sa.Column("resonance_score", sa.Integer(), nullable=False, server_default="70"),
        sa.Column("persona", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_cb_agents_workspace_id", "workspace_id"),
        sa.Index("ix_cb_agents_owner_id", "owner_id"),
    )

    op.create_table(
        "cb_documents",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("workspace_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("metadata", JSON_TYPE, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_cb_documents_workspace_id", "workspace_id"),
        sa.Index("ix_cb_documents_created_at", "created_at"),
    )

    op.create_table(
        "cb_pipelines",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("workspace_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("agent_id", sa.String(64), nullable=True),
        sa.Column("request_text", sa.Text(), nullable=False),
        sa.Column("request_key", sa.String(128), nullable=False),
        sa.Column("channel", sa.String(32), nullable=False),
        sa.Column("reply_to", sa.String(128), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("current_step", sa.String(64), nullable=True),
        sa.Column("step_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("revisions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("plan_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("steps", JSON_TYPE, nullable=False),
        sa.Column("project_id", sa.String(64), nullable=True),
        sa.Column("awaiting_approval_id", sa.String(64), nullable=True),
        sa.Column("result", sa.Text(), nullable=True),
        sa.Column("failure_reason", sa.String(256), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_cb_pipelines_workspace_id", "workspace_id"),
        sa.Index("ix_cb_pipelines_request_key_created", "request_key", "created_at"),
    )
    op.create_index(
        "uq_cb_pipelines_active_per_user",
        "cb_pipelines",
        ["user_id", "workspace_id"],
        unique=True,
        sqlite_where=ACTIVE_PIPELINE_WHERE,
        postgresql_where=ACTIVE_PIPELINE_WHERE,
    )

    op.create_table(
        "cb_approvals",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("workspace_id", sa.String(64), nullable=False),
        sa.Column("agent_id", sa.String(64), nullable=True),
        sa.Column("pipeline_id", sa.String(64), nullable=True),
        sa.Column("action_kind", sa.String(32), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("payload", JSON_TYPE, nullable=False),
        sa.Column("target_id", sa.String(64), nullable=True),
        sa.Column("title", sa.String(256), nullable=False, server_default=""),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(128), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_cb_approvals_workspace_id", "workspace_id"),
        sa.Index("ix_cb_approvals_pipeline_id", "pipeline_id"),
        sa.Index("ix_cb_approvals_status", "status"),
    )

    op.create_table(
        "cb_usage_counters",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("workspace_id", sa.String(64), nullable=False),
        sa.Column("period", sa.String(7), nullable=False),
        sa.Column("tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cost_usd", sa.Float(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("workspace_id", "period", name="uq_cb_usage_counters_workspace_period"),
    )

    op.create_table(
        "cb_budget_rules",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("workspace_id", sa.String(64), nullable=False),
        sa.Column("max_tokens_per_period", sa.Integer(), nullable=True),
        sa.Column("max_usd_per_period", sa.Float(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_cb_budget_rules_workspace_id", "workspace_id"),
    )

    op.create_table(
        "cb_resonance_entries",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("workspace_id", sa.String(64), nullable=False),
        sa.Column("agent_id", sa.String(64), nullable=True),
        sa.Column("topic", sa.String(256), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("embedding", JSON_TYPE, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_cb_resonance_entries_workspace_id", "workspace_id"),
        sa.Index("ix_cb_resonance_entries_created_at", "created_at"),
    )


def downgrade() -> None:
    """Drop all tables created in upgrade."""
    op.drop_table("cb_resonance_entries")
    op.drop_table("cb_budget_rules")
    op.drop_table("cb_usage_counters")
    op.drop_table("cb_approvals")
    op.drop_index("uq_cb_pipelines_active_per_user", table_name="cb_pipelines")
    op.drop_table("cb_pipelines")
    op.drop_table("cb_documents")
    op.drop_table("cb_agents")
    op.drop_table("cb_workspaces")
    op.drop_table("cb_identities")
