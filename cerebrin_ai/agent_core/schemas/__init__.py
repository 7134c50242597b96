"""Domain schemas of the control plane (pydantic models and closed enums)."""

from .base import BaseSchema
from .domain import (
    ActionKind,
    Agent,
    ApprovalRequest,
    ApprovalStatus,
    AutonomyLevel,
    BudgetDecision,
    BudgetRule,
    ChatTurn,
    Document,
    DocumentKind,
    DocumentStatus,
    GenerationResult,
    HitlLevel,
    Identity,
    InboundMedia,
    InboundMessage,
    Intent,
    OutboundMessage,
    Pipeline,
    PipelinePhase,
    PipelineStatus,
    PipelineStep,
    Platform,
    ResonanceEntry,
    RiskLevel,
    StepStatus,
    TaskKind,
    UsageCounter,
    Workspace,
)

__all__ = [
    "BaseSchema",
    "ActionKind",
    "Agent",
    "ApprovalRequest",
    "ApprovalStatus",
    "AutonomyLevel",
    "BudgetDecision",
    "BudgetRule",
    "ChatTurn",
    "Document",
    "DocumentKind",
    "DocumentStatus",
    "GenerationResult",
    "HitlLevel",
    "Identity",
    "InboundMedia",
    "InboundMessage",
    "Intent",
    "OutboundMessage",
    "Pipeline",
    "PipelinePhase",
    "PipelineStatus",
    "PipelineStep",
    "Platform",
    "ResonanceEntry",
    "RiskLevel",
    "StepStatus",
    "TaskKind",
    "UsageCounter",
    "Workspace",
]
