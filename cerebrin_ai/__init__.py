"""Cerebrin AI.

This package contains the agent control plane behind Cerebrin workspaces: the
part that turns an inbound chat message into tracked, budgeted and
human-approved agent work.

High-level architecture
-----------------------

- ``cerebrin_ai.agent_core``:

  - Intent classification for inbound chat events.
  - Provider routing over ``pydantic_ai`` backends.
  - Budget guard (per-workspace spend ceilings).
  - Approval gate and risk policy (human-in-the-loop).
  - Resonance memory (workspace lessons).
  - A LangGraph-based pipeline orchestrator with pause/resume on approval.
  - Repository interfaces and SQL implementations for persistence.

- ``cerebrin_ai.gateway``: outbound client for the chat gateway.

- ``cerebrin_ai.server``: FastAPI application exposing the inbound webhook and
  approval endpoints, and wiring everything together from settings.

Typical workflow
----------------

1. The chat gateway posts an inbound event to the webhook.
2. ``IntentRouter`` classifies it and answers a command, starts a pipeline or
   produces a direct chat reply.
3. Pipelines run on a background worker pool; every provider call passes the
   budget guard first.
4. Risky output parks the pipeline behind an approval request; resolving the
   request resumes it.
"""
