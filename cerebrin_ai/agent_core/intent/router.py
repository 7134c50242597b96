from __future__ import annotations

"""Message intent router.

``IntentRouter.handle`` is the entry point for every inbound chat event. It
resolves who is writing, classifies the text into a closed ``Intent`` before
any branching, and dispatches to exactly one handler. Every handled event
yields exactly one reply through the chat gateway and at most one side
effect.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional

from cerebrin_ai.core.errors import (
    BudgetExceeded,
    ConflictError,
    IdentityNotFound,
    InvalidStateError,
    ProviderError,
    WorkspaceMissing,
)
from cerebrin_ai.gateway.client import ChatGateway

from .. import messages
from ..approval.gate import ApprovalGate
from ..budget.guard import BudgetGuard
from ..generation import GenerationService
from ..pipeline.orchestrator import PipelineOrchestrator
from ..pipeline.worker import PipelineWorkerPool
from ..policy.risk import classify_action_risk, risk_requires_approval
from ..prompts import build_system_prompt
from ..repos.interfaces import DirectoryRepository, DocumentRepository
from ..schemas.base import BaseSchema
from ..schemas.domain import (
    ActionKind,
    Agent,
    ApprovalStatus,
    Document,
    DocumentKind,
    DocumentStatus,
    InboundMessage,
    Intent,
    OutboundMessage,
    Pipeline,
    TaskKind,
    Workspace,
)
from .classifier import classify

logger = logging.getLogger(__name__)

# Pending approvals examined per decision; stale ones are retired along the way.
PENDING_SCAN_LIMIT = 20


class InboundOutcome(BaseSchema):
    """What ``IntentRouter.handle`` did with an inbound event."""

    intent: Optional[Intent] = None
    status: str
    pipeline_id: Optional[str] = None


@dataclass(frozen=True)
class _Turn:
    message: InboundMessage
    user_id: str
    workspace: Workspace
    agent: Agent
    agent_id: Optional[str]
    active_pipeline: Optional[Pipeline]


class IntentRouter:
    def __init__(
        self,
        *,
        directory: DirectoryRepository,
        documents: DocumentRepository,
        gate: ApprovalGate,
        guard: BudgetGuard,
        generation: GenerationService,
        orchestrator: PipelineOrchestrator,
        pool: PipelineWorkerPool,
        gateway: ChatGateway,
    ) -> None:
        self._directory = directory
        self._documents = documents
        self._gate = gate
        self._guard = guard
        self._generation = generation
        self._orchestrator = orchestrator
        self._pool = pool
        self._gateway = gateway
        self._handlers: Dict[Intent, Callable[[_Turn], Awaitable[InboundOutcome]]] = {
            Intent.status: self._handle_status,
            Intent.approve: self._handle_approve,
            Intent.reject: self._handle_reject,
            Intent.list_tasks: self._handle_list_tasks,
            Intent.help: self._handle_help,
            Intent.media: self._handle_media,
            Intent.progress: self._handle_progress,
            Intent.pipeline: self._handle_pipeline,
            Intent.chat: self._handle_chat,
        }

    async def handle(self, message: InboundMessage) -> InboundOutcome:
        intent: Optional[Intent] = None
        try:
            turn = await self._resolve(message)
            intent = classify(
                message.text,
                has_media=message.media is not None,
                has_active_pipeline=turn.active_pipeline is not None,
            )
            logger.debug(f"Inbound {message.platform.value}:{message.sender} classified as {intent.value}")
            return await self._handlers[intent](turn)
        except IdentityNotFound:
            await self._reply(message, messages.onboarding(message.platform))
            return InboundOutcome(status="identity_not_found")
        except WorkspaceMissing:
            await self._reply(message, messages.workspace_setup())
            return InboundOutcome(status="workspace_missing")
        except BudgetExceeded as e:
            await self._reply(message, messages.budget_exceeded(e.reason))
            return InboundOutcome(intent=intent, status="budget_exceeded")
        except Exception:
            logger.exception(f"Failed to handle inbound message from {message.platform.value}:{message.sender}")
            await self._reply(message, messages.chat_error())
            return InboundOutcome(intent=intent, status="error")

    async def _resolve(self, message: InboundMessage) -> _Turn:
        identity = await self._directory.find_identity(message.sender)
        if identity is None:
            raise IdentityNotFound(message.sender)
        workspace = await self._directory.active_workspace(identity.user_id)
        if workspace is None:
            raise WorkspaceMissing(identity.user_id)
        agent = await self._directory.active_agent(identity.user_id)
        active = await self._orchestrator.active_for(identity.user_id, workspace.id)
        return _Turn(
            message=message,
            user_id=identity.user_id,
            workspace=workspace,
            agent=agent or Agent(workspace_id=workspace.id, owner_id=identity.user_id),
            agent_id=agent.id if agent else None,
            active_pipeline=active,
        )

    async def _reply(self, message: InboundMessage, text: str) -> bool:
        return await self._gateway.send(OutboundMessage(to=message.sender, platform=message.platform, text=text))

    # ------------------------------------------------------------------
    # Command handlers
    # ------------------------------------------------------------------

    async def _handle_status(self, turn: _Turn) -> InboundOutcome:
        pending_tasks = await self._documents.count_open(turn.workspace.id, kind=DocumentKind.task)
        pending_approvals = await self._gate.pending(turn.workspace.id)
        await self._reply(
            turn.message,
            messages.status_summary(
                turn.agent.name,
                pending_tasks=pending_tasks,
                pending_approvals=len(pending_approvals),
                active_pipeline=turn.active_pipeline,
            ),
        )
        return InboundOutcome(intent=Intent.status, status="status_sent")

    async def _handle_approve(self, turn: _Turn) -> InboundOutcome:
        return await self._decide(turn, ApprovalStatus.approved)

    async def _handle_reject(self, turn: _Turn) -> InboundOutcome:
        return await self._decide(turn, ApprovalStatus.rejected)

    async def _decide(self, turn: _Turn, decision: ApprovalStatus) -> InboundOutcome:
        intent = Intent.approve if decision is ApprovalStatus.approved else Intent.reject
        approval = None
        for candidate in await self._gate.pending(turn.workspace.id, limit=PENDING_SCAN_LIMIT):
            if await self._orchestrator.retire_if_stale(candidate):
                continue
            approval = candidate
            break
        if approval is None:
            await self._reply(turn.message, messages.no_pending_approvals())
            return InboundOutcome(intent=intent, status="no_approvals")

        try:
            if approval.pipeline_id and decision is ApprovalStatus.approved:
                await self._orchestrator.approve(approval.pipeline_id, approval.id, decided_by=turn.user_id)
            elif approval.pipeline_id:
                await self._orchestrator.reject(approval.pipeline_id, approval.id, decided_by=turn.user_id)
            else:
                await self._gate.resolve(approval.id, decision, decided_by=turn.user_id)
        except InvalidStateError as e:
            logger.info(f"Approval {approval.id} could not be {decision.value}: {e}")
            await self._reply(turn.message, messages.already_resolved())
            return InboundOutcome(intent=intent, status="already_resolved")

        if decision is ApprovalStatus.approved:
            text = messages.approved(approval.title, pipeline_bound=approval.pipeline_id is not None)
        else:
            text = messages.rejected(approval.title)
        await self._reply(turn.message, text)
        return InboundOutcome(intent=intent, status=decision.value, pipeline_id=approval.pipeline_id)

    async def _handle_list_tasks(self, turn: _Turn) -> InboundOutcome:
        tasks = await self._documents.list(turn.workspace.id, kind=DocumentKind.task, limit=10)
        await self._reply(turn.message, messages.task_list(tasks))
        return InboundOutcome(intent=Intent.list_tasks, status="tasks_sent")

    async def _handle_help(self, turn: _Turn) -> InboundOutcome:
        await self._reply(turn.message, messages.help_menu(turn.agent.name))
        return InboundOutcome(intent=Intent.help, status="help_sent")

    # ------------------------------------------------------------------
    # Media, pipelines and chat
    # ------------------------------------------------------------------

    async def _handle_media(self, turn: _Turn) -> InboundOutcome:
        media = turn.message.media
        assert media is not None
        caption = turn.message.text.strip()
        stamp = turn.message.timestamp or datetime.now(timezone.utc)
        document = Document(
            workspace_id=turn.workspace.id,
            user_id=turn.user_id,
            title=media.filename or f"{media.type}_{int(stamp.timestamp())}",
            kind=DocumentKind.external,
            status=DocumentStatus.done.value,
            metadata={
                "source": turn.message.platform.value,
                "media_type": media.type,
                "media_url": media.url,
                "mime_type": media.mime_type,
                "caption": caption,
                "uploaded_via": "chat_webhook",
            },
        )
        await self._documents.create(document)
        await self._reply(turn.message, messages.media_saved(media.filename, caption))
        return InboundOutcome(intent=Intent.media, status="media_saved")

    async def _handle_progress(self, turn: _Turn) -> InboundOutcome:
        pipeline = turn.active_pipeline
        assert pipeline is not None
        return await self._reply_progress(turn, pipeline)

    async def _reply_progress(self, turn: _Turn, pipeline: Pipeline) -> InboundOutcome:
        role = self._orchestrator.current_role(pipeline)
        await self._reply(turn.message, messages.pipeline_in_progress(pipeline, role.name))
        return InboundOutcome(intent=Intent.progress, status="pipeline_in_progress", pipeline_id=pipeline.id)

    async def _handle_pipeline(self, turn: _Turn) -> InboundOutcome:
        if not self._generation.simulation_mode:
            await self._guard.ensure(turn.workspace.id, turn.agent_id)

        try:
            pipeline = await self._orchestrator.create(
                turn.workspace.id,
                turn.user_id,
                turn.agent_id,
                turn.message.text.strip(),
                channel=turn.message.platform,
                reply_to=turn.message.sender,
            )
        except ConflictError as e:
            active = await self._orchestrator.active_for(turn.user_id, turn.workspace.id)
            if active is not None:
                return await self._reply_progress(turn, active)
            if e.existing is None:
                raise
            # A repeat of a request whose pipeline has already ended.
            await self._reply(turn.message, messages.pipeline_already_finished(e.existing))
            return InboundOutcome(
                intent=Intent.pipeline, status="pipeline_already_finished", pipeline_id=e.existing.id
            )

        await self._reply(turn.message, messages.pipeline_accepted(turn.agent.name, turn.message.text))
        self._pool.submit(pipeline.id, self._orchestrator.run)
        return InboundOutcome(intent=Intent.pipeline, status="pipeline_created", pipeline_id=pipeline.id)

    async def _handle_chat(self, turn: _Turn) -> InboundOutcome:
        text = turn.message.text.strip()
        if not text:
            return await self._handle_help(turn)

        chunks: list[str] = []
        try:
            async for chunk in self._generation.stream(
                turn.workspace.id,
                TaskKind.chat,
                text,
                agent_id=turn.agent_id,
                system_prompt=build_system_prompt(turn.agent, turn.workspace.id),
            ):
                chunks.append(chunk)
        except ProviderError as e:
            logger.error(f"Chat generation failed for workspace {turn.workspace.id}: {e}")
            await self._reply(turn.message, messages.chat_error())
            return InboundOutcome(intent=Intent.chat, status="chat_error")

        answer = "".join(chunks)
        await self._reply(turn.message, messages.truncate_reply(answer))

        risk = classify_action_risk(answer)
        if risk_requires_approval(risk, hitl=turn.agent.hitl_level, autonomy=turn.agent.autonomy_level):
            await self._gate.propose(
                turn.workspace.id,
                turn.agent_id,
                ActionKind.agent_action,
                "chat_reply",
                {"message": text[:500], "reply": answer[:2000], "risk": risk.value},
                title=f"💬 {messages.excerpt(text, 60)}",
            )
            return InboundOutcome(intent=Intent.chat, status="chat_replied_pending_approval")
        return InboundOutcome(intent=Intent.chat, status="chat_replied")
