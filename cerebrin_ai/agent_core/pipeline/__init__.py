"""Multi-role pipeline: roles, LangGraph orchestrator and worker pool."""

from .models import OrchestratorDeps, OrchestratorSettings
from .orchestrator import PipelineOrchestrator, parse_quality_score, request_key
from .roles import DEFAULT_ROLE_TABLE, RoleSpec, RoleTable, StepSpec
from .worker import PipelineWorkerPool

__all__ = [
    "DEFAULT_ROLE_TABLE",
    "OrchestratorDeps",
    "OrchestratorSettings",
    "PipelineOrchestrator",
    "PipelineWorkerPool",
    "RoleSpec",
    "RoleTable",
    "StepSpec",
    "parse_quality_score",
    "request_key",
]
