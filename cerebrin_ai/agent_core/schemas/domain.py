from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import ConfigDict, Field

from .base import BaseSchema


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Platform(str, Enum):
    whatsapp = "whatsapp"
    telegram = "telegram"
    web = "web"


class AutonomyLevel(str, Enum):
    observer = "observer"
    operator = "operator"
    executor = "executor"


class HitlLevel(str, Enum):
    full_manual = "full_manual"
    plan_only = "plan_only"
    result_only = "result_only"
    autonomous = "autonomous"


class RiskLevel(str, Enum):
    """Closed risk classification used before any gating decision."""

    none = "none"
    routine = "routine"
    irreversible = "irreversible"


class TaskKind(str, Enum):
    chat = "chat"
    plan = "plan"
    document = "document"
    extraction = "extraction"
    summarization = "summarization"


class Intent(str, Enum):
    status = "status"
    approve = "approve"
    reject = "reject"
    list_tasks = "list_tasks"
    help = "help"
    media = "media"
    progress = "progress"
    pipeline = "pipeline"
    chat = "chat"


class PipelineStatus(str, Enum):
    created = "created"
    in_progress = "in_progress"
    awaiting_approval = "awaiting_approval"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStatus.completed, PipelineStatus.failed)


TERMINAL_PIPELINE_STATUSES = (PipelineStatus.completed.value, PipelineStatus.failed.value)


class PipelinePhase(str, Enum):
    research = "research"
    write = "write"
    review = "review"
    final_review = "final_review"


class StepStatus(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"
    needs_revision = "needs_revision"


class ApprovalStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class ActionKind(str, Enum):
    create = "CREATE"
    update = "UPDATE"
    delete = "DELETE"
    execute_plan = "execute_plan"
    agent_action = "agent_action"
    pipeline_delivery = "pipeline_delivery"
    budget_hold = "budget_hold"


class DocumentKind(str, Enum):
    external = "external"
    task = "task"
    project = "project"


class DocumentStatus(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    done = "done"
    failed = "failed"
    cancelled = "cancelled"


CLOSED_DOCUMENT_STATUSES = (
    DocumentStatus.done.value,
    DocumentStatus.failed.value,
    DocumentStatus.cancelled.value,
)


class Identity(BaseSchema):
    handle: str
    user_id: str
    platform: Optional[Platform] = None


class Workspace(BaseSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str
    name: str = "Workspace"
    created_at: datetime = Field(default_factory=_utc_now)


class Agent(BaseSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    workspace_id: Optional[str] = None
    owner_id: Optional[str] = None

    name: str = "Cerebrin"
    emoji: Optional[str] = None
    autonomy_level: AutonomyLevel = AutonomyLevel.operator
    hitl_level: HitlLevel = HitlLevel.plan_only
    resonance_score: int = Field(default=70, ge=0, le=100)
    persona: Optional[str] = None
    is_active: bool = True

    created_at: datetime = Field(default_factory=_utc_now)

    @property
    def display_name(self) -> str:
        return f"{self.emoji or '🤖'} {self.name}"


class PipelineStep(BaseSchema):
    phase: PipelinePhase
    role: str
    title: str
    task_kind: TaskKind
    status: StepStatus = StepStatus.pending
    input: Optional[str] = None
    output: Optional[str] = None
    quality_score: Optional[int] = None
    task_id: Optional[str] = None


class Pipeline(BaseSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    workspace_id: str
    user_id: str
    agent_id: Optional[str] = None

    request_text: str
    request_key: str = ""
    channel: Platform = Platform.web
    reply_to: Optional[str] = None

    status: PipelineStatus = PipelineStatus.created
    current_step: Optional[str] = None
    step_index: int = 0
    revisions: int = 0
    plan_approved: bool = False
    steps: List[PipelineStep] = Field(default_factory=list)
    project_id: Optional[str] = None

    awaiting_approval_id: Optional[str] = None
    result: Optional[str] = None
    failure_reason: Optional[str] = None

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class ApprovalRequest(BaseSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    workspace_id: str
    agent_id: Optional[str] = None
    pipeline_id: Optional[str] = None

    action_kind: ActionKind
    entity_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    target_id: Optional[str] = None
    title: str = ""

    status: ApprovalStatus = ApprovalStatus.pending
    created_at: datetime = Field(default_factory=_utc_now)
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None


class UsageCounter(BaseSchema):
    workspace_id: str
    period: str
    tokens: int = 0
    cost_usd: float = 0.0


class BudgetRule(BaseSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    workspace_id: str
    max_tokens_per_period: Optional[int] = Field(default=None, ge=0)
    max_usd_per_period: Optional[float] = Field(default=None, ge=0)
    is_active: bool = True


class BudgetDecision(BaseSchema):
    allowed: bool
    reason: Optional[str] = None


class ResonanceEntry(BaseSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    workspace_id: str
    agent_id: Optional[str] = None
    topic: str
    content: str
    embedding: Optional[List[float]] = None
    created_at: datetime = Field(default_factory=_utc_now)


class Document(BaseSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    workspace_id: str
    user_id: Optional[str] = None
    title: str
    kind: DocumentKind = DocumentKind.external
    status: str = "pending"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utc_now)


class ChatTurn(BaseSchema):
    role: str = "user"  # "user" | "model"
    text: str


class GenerationResult(BaseSchema):
    text: str
    tokens_used: int = 0
    cost_usd: float = 0.0
    backend: str
    requires_approval_hint: bool = False


class InboundMedia(BaseSchema):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str
    url: str
    mime_type: Optional[str] = None
    filename: Optional[str] = None


class InboundMessage(BaseSchema):
    """Inbound chat event as delivered by the gateway webhook."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    sender: str = Field(alias="from", min_length=1)
    platform: Platform = Platform.whatsapp
    text: str = ""
    media: Optional[InboundMedia] = None
    timestamp: Optional[datetime] = None


class OutboundMessage(BaseSchema):
    to: str
    platform: Platform
    text: str
    media_url: Optional[str] = None
    reply_to: Optional[str] = None
