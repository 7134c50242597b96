"""Agent control plane core: routing, policy, budgets, memory and pipelines.

This package contains the part of Cerebrin that decides what happens to an
inbound chat message and keeps agent work safe and affordable.

Design overview
---------------

- ``intent``: classifies an inbound event into a closed ``Intent`` and
  dispatches it (commands, media, direct chat, pipelines).
- ``routing`` + ``backends``: pick a generative backend by task kind and call
  it through ``pydantic_ai``.
- ``generation``: the only path to a provider call; checks the budget first
  and records usage after.
- ``budget``: per-workspace, per-period spend ceilings.
- ``approval`` + ``policy``: closed risk classification and the
  human-in-the-loop approval queue.
- ``memory``: append-only workspace lessons used as context.
- ``pipeline``: LangGraph orchestrator for the research, writing, review and
  final review roles, with pause/resume on approval.

Everything is written against the repository Protocols in ``repos``; the SQL
implementations live in ``repos.sql``.
"""

from .schemas.domain import (
    ApprovalRequest,
    Intent,
    Pipeline,
    PipelineStatus,
    RiskLevel,
    TaskKind,
)

__all__ = [
    "ApprovalRequest",
    "Intent",
    "Pipeline",
    "PipelineStatus",
    "RiskLevel",
    "TaskKind",
]
