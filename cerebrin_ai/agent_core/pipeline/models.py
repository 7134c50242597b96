from __future__ import annotations

"""Orchestrator dependency bundle and LangGraph state types.

- ``OrchestratorDeps`` collects the repositories and services the orchestrator
  needs.
- ``_PipelineGraphState`` is the state passed between LangGraph nodes for one
  ``run`` invocation. The durable state lives in the pipeline row; a parked
  pipeline is resumed by a new invocation starting at its stored step index.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, NotRequired, Optional, Required, TypedDict

from ..approval.gate import ApprovalGate
from ..generation import GenerationService
from ..memory.resonance import ResonanceMemory
from ..repos.interfaces import DirectoryRepository, DocumentRepository, PipelineRepository
from .roles import DEFAULT_ROLE_TABLE, RoleTable

if TYPE_CHECKING:
    from cerebrin_ai.gateway.client import ChatGateway


@dataclass(frozen=True)
class OrchestratorSettings:
    step_timeout_seconds: float = 120.0
    dedupe_window_seconds: float = 120.0
    max_revisions: int = 1
    revision_threshold: int = 6
    default_quality_score: int = 7
    progress_notifications: bool = True


@dataclass(frozen=True)
class OrchestratorDeps:
    """Dependency bundle for ``PipelineOrchestrator``."""

    pipelines: PipelineRepository
    directory: DirectoryRepository
    gate: ApprovalGate
    generation: GenerationService
    gateway: ChatGateway
    memory: Optional[ResonanceMemory] = None
    documents: Optional[DocumentRepository] = None
    roles: RoleTable = DEFAULT_ROLE_TABLE
    settings: OrchestratorSettings = field(default_factory=OrchestratorSettings)


class _PipelineGraphState(TypedDict):
    """LangGraph state for a single orchestrator run.

    Required keys:

    - ``pipeline_id``: pipeline being executed.
    - ``idx``: index of the next step to execute.
    - ``awaiting_approval_id``: set when the pipeline parks for approval.

    Optional keys:

    - ``_finished``: every step has run.
    - ``_stopped``: the run ended early (failed, or state changed elsewhere).
    """

    pipeline_id: Required[str]
    idx: Required[int]
    awaiting_approval_id: Required[Optional[str]]
    _finished: NotRequired[bool]
    _stopped: NotRequired[bool]
