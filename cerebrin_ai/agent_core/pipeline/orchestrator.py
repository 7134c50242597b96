from __future__ import annotations

"""LangGraph pipeline orchestrator.

``PipelineOrchestrator`` turns a substantial chat request into a sequence of
specialist steps (research, writing, review, final review) and drives them to
completion.

Execution model
---------------

- ``create`` persists the pipeline. The store refuses a second non-terminal
  pipeline for the same (user, workspace), and a recent pipeline with the same
  request key is treated as a duplicate delivery.
- ``run`` executes a LangGraph state machine over ``_PipelineGraphState``;
  each iteration of the ``execute`` node runs exactly one step at ``idx``.
- Every state change is a conditional update on the expected source status,
  so a pipeline changed elsewhere (approved, rejected, failed) stops the run.

Pause/resume
------------

When a step output or the final delivery needs a human decision, the
orchestrator writes an ``ApprovalRequest`` through the gate, stores
``awaiting_approval`` with the next step index and ends the graph. Nothing is
held while the pipeline is parked. ``approve`` flips it back to
``in_progress`` and schedules a new ``run`` that starts at the stored index.

A step denied by the budget guard parks the same way behind a
``budget_hold`` request: the step goes back to pending and the completed
outputs are kept, so approving after the budget is raised continues from the
denied step. Rejecting the hold cancels the pipeline.

Workspace records
-----------------

With a document repository configured, ``create`` writes a ``project``
document plus one ``task`` document per step. Tasks follow their step
(in progress, done, reopened on revision) and the project carries the
completion percentage until the pipeline completes or fails.
"""

import asyncio
import hashlib
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from langgraph.graph import END, StateGraph

from cerebrin_ai.core.errors import (
    BudgetExceeded,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ProviderError,
)

from .. import messages
from ..policy.risk import classify_action_risk, normalize_text, risk_requires_approval
from ..schemas.domain import (
    ActionKind,
    Agent,
    ApprovalRequest,
    ApprovalStatus,
    Document,
    DocumentKind,
    DocumentStatus,
    HitlLevel,
    OutboundMessage,
    Pipeline,
    PipelinePhase,
    PipelineStatus,
    PipelineStep,
    Platform,
    RiskLevel,
    StepStatus,
)
from .models import OrchestratorDeps, _PipelineGraphState
from .roles import RoleSpec
from .worker import PipelineWorkerPool

logger = logging.getLogger(__name__)

PLAN_GATED_LEVELS = (HitlLevel.full_manual, HitlLevel.plan_only)
DELIVERY_GATED_LEVELS = (HitlLevel.full_manual, HitlLevel.result_only)
NON_TERMINAL_STATUSES = (
    PipelineStatus.created,
    PipelineStatus.in_progress,
    PipelineStatus.awaiting_approval,
)
STALE_APPROVAL_ACTOR = "system:stale"

_SCORE_PATTERN = re.compile(r"score.*?(\d+)", re.IGNORECASE)


def request_key(user_id: str, workspace_id: str, text: str) -> str:
    raw = f"{user_id}:{workspace_id}:{normalize_text(text)}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def parse_quality_score(text: str, default: int = 7) -> int:
    match = _SCORE_PATTERN.search(text or "")
    return int(match.group(1)) if match else default


def _orphans(pipeline: Pipeline, approval: ApprovalRequest) -> bool:
    if pipeline.status.is_terminal:
        return True
    return pipeline.status is PipelineStatus.awaiting_approval and pipeline.awaiting_approval_id != approval.id


class PipelineOrchestrator:
    """Create, run and resume multi-role pipelines."""

    def __init__(self, *, deps: OrchestratorDeps, pool: Optional[PipelineWorkerPool] = None) -> None:
        """
        Args:
            deps: Repositories and services used by the orchestrator.
            pool: Worker pool that runs resumed pipelines. Without one,
                ``approve`` runs the resumed pipeline inline.
        """
        self._deps = deps
        self._pool = pool
        self._graph = self._build_graph()

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_PipelineGraphState)
        g.add_node("start", self._node_start)
        g.add_node("execute", self._node_execute_next)
        g.add_node("pause_for_approval", self._node_pause_for_approval)
        g.add_node("finish", self._node_finish)

        g.set_entry_point("start")
        g.add_conditional_edges(
            "start",
            self._route_after_start,
            {
                "pause": "pause_for_approval",
                "execute": "execute",
                "finish": "finish",
                "stop": END,
            },
        )
        g.add_conditional_edges(
            "execute",
            self._route_after_execute,
            {
                "pause": "pause_for_approval",
                "finish": "finish",
                "continue": "execute",
                "stop": END,
            },
        )
        g.add_conditional_edges(
            "finish",
            self._route_after_finish,
            {
                "pause": "pause_for_approval",
                "done": END,
            },
        )
        g.add_edge("pause_for_approval", END)
        return g.compile()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def create(
        self,
        workspace_id: str,
        user_id: str,
        agent_id: Optional[str],
        request_text: str,
        channel: Platform = Platform.web,
        reply_to: Optional[str] = None,
    ) -> Pipeline:
        """
        Persist a new pipeline and move it to ``in_progress``.

        The dedupe window is measured on this server's clock, the same clock
        that stamps ``created_at``.

        Raises:
            ConflictError: the same request was seen within the dedupe window,
                or the user already has a non-terminal pipeline in the
                workspace. ``existing`` carries the blocking pipeline.
        """
        key = request_key(user_id, workspace_id, request_text)
        since = datetime.now(timezone.utc) - timedelta(seconds=self._deps.settings.dedupe_window_seconds)
        recent = await self._deps.pipelines.find_recent(key, since=since)
        if recent is not None:
            logger.info(f"Duplicate pipeline request ignored: key={key[:12]} existing={recent.id}")
            raise ConflictError("Duplicate pipeline request", existing=recent)

        steps = self._deps.roles.build_steps()
        pipeline = Pipeline(
            workspace_id=workspace_id,
            user_id=user_id,
            agent_id=agent_id,
            request_text=request_text,
            request_key=key,
            channel=channel,
            reply_to=reply_to,
            steps=steps,
            current_step=steps[0].role if steps else None,
        )
        await self._deps.pipelines.create(pipeline)
        changes: dict = {"status": PipelineStatus.in_progress}
        if self._deps.documents is not None:
            changes["project_id"], changes["steps"] = await self._open_records(pipeline)
        started = await self._deps.pipelines.update(pipeline.id, expected=[PipelineStatus.created], **changes)
        logger.info(f"Pipeline created: id={pipeline.id} workspace={workspace_id} user={user_id}")
        return started or pipeline

    async def run(self, pipeline_id: str) -> None:
        """Execute the pipeline from its stored step index until it parks or ends."""
        pipeline = await self._deps.pipelines.get(pipeline_id)
        if pipeline is None:
            logger.warning(f"Pipeline not found for run: {pipeline_id}")
            return
        if pipeline.status is not PipelineStatus.in_progress:
            logger.info(f"Pipeline {pipeline_id} is {pipeline.status.value}; nothing to run")
            return

        state: _PipelineGraphState = {
            "pipeline_id": pipeline_id,
            "idx": pipeline.step_index,
            "awaiting_approval_id": None,
        }
        try:
            await self._graph.ainvoke(state, config={"recursion_limit": 50})
        except Exception:
            logger.exception(f"Pipeline {pipeline_id} crashed")
            current = await self._deps.pipelines.get(pipeline_id)
            title = self._current_title(current or pipeline)
            await self._fail(pipeline_id, reason="error", text=messages.step_failed(title))

    async def approve(self, pipeline_id: str, approval_id: str, decided_by: Optional[str] = None) -> Pipeline:
        """
        Approve the request a parked pipeline is waiting on and resume it.

        Raises:
            NotFoundError: unknown pipeline, or the approval does not belong
                to it.
            InvalidStateError: the pipeline is not awaiting approval, or the
                approval was already resolved.
        """
        pipeline, approval = await self._parked(pipeline_id, approval_id)
        await self._deps.gate.resolve(approval_id, ApprovalStatus.approved, decided_by=decided_by)

        if approval.action_kind is ActionKind.pipeline_delivery:
            completed = await self._complete(
                pipeline_id, pipeline.result or "", expected=[PipelineStatus.awaiting_approval]
            )
            if completed is None:
                raise await self._state_error(pipeline_id)
            return completed

        changes: dict = {"status": PipelineStatus.in_progress, "awaiting_approval_id": None}
        if approval.action_kind is ActionKind.execute_plan:
            changes["plan_approved"] = True
        resumed = await self._deps.pipelines.update(
            pipeline_id, expected=[PipelineStatus.awaiting_approval], **changes
        )
        if resumed is None:
            raise await self._state_error(pipeline_id)

        logger.info(f"Pipeline resumed: id={pipeline_id} approval={approval_id}")
        if self._pool is not None:
            self._pool.submit(pipeline_id, self.run)
        else:
            await self.run(pipeline_id)
        return resumed

    async def reject(self, pipeline_id: str, approval_id: str, decided_by: Optional[str] = None) -> Pipeline:
        """Reject the request a parked pipeline is waiting on and fail the pipeline."""
        pipeline, _ = await self._parked(pipeline_id, approval_id)
        await self._deps.gate.resolve(approval_id, ApprovalStatus.rejected, decided_by=decided_by)
        failed = await self._fail(pipeline_id, reason="rejected", text=messages.pipeline_rejected(pipeline))
        if failed is None:
            raise await self._state_error(pipeline_id)
        logger.info(f"Pipeline rejected: id={pipeline_id} approval={approval_id}")
        return failed

    async def get(self, pipeline_id: str) -> Pipeline:
        pipeline = await self._deps.pipelines.get(pipeline_id)
        if pipeline is None:
            raise NotFoundError("pipeline", pipeline_id)
        return pipeline

    async def active_for(self, user_id: str, workspace_id: str) -> Optional[Pipeline]:
        return await self._deps.pipelines.active_for(user_id, workspace_id)

    def current_role(self, pipeline: Pipeline) -> RoleSpec:
        return self._deps.roles.role(pipeline.current_step or "director")

    async def retire_if_stale(self, approval: ApprovalRequest) -> bool:
        """
        Reject a pending pipeline approval its pipeline can no longer act on.

        An approval is stale when its pipeline is gone, has ended, or is
        parked on a different request. Stale approvals are rejected without
        moving the agent's resonance score.

        Returns:
            True when the approval was stale (and is no longer pending).
        """
        if approval.pipeline_id is None or approval.status is not ApprovalStatus.pending:
            return False
        pipeline = await self._deps.pipelines.get(approval.pipeline_id)
        if pipeline is not None and not _orphans(pipeline, approval):
            return False
        try:
            await self._deps.gate.resolve(
                approval.id, ApprovalStatus.rejected, decided_by=STALE_APPROVAL_ACTOR, adjust_score=False
            )
        except InvalidStateError:
            pass  # resolved concurrently
        logger.info(f"Stale approval retired: id={approval.id} pipeline={approval.pipeline_id}")
        return True

    # ------------------------------------------------------------------
    # Graph nodes
    # ------------------------------------------------------------------

    async def _node_start(self, state: _PipelineGraphState) -> _PipelineGraphState:
        """Entry node; requests plan approval before the first step when required."""
        pipeline = await self._deps.pipelines.get(state["pipeline_id"])
        if pipeline is None or pipeline.status is not PipelineStatus.in_progress:
            state["_stopped"] = True
            return state

        agent = await self._agent_for(pipeline)
        if state["idx"] == 0 and not pipeline.plan_approved and agent.hitl_level in PLAN_GATED_LEVELS:
            approval = await self._deps.gate.propose(
                pipeline.workspace_id,
                pipeline.agent_id,
                ActionKind.execute_plan,
                "pipeline",
                {
                    "pipeline_id": pipeline.id,
                    "request": pipeline.request_text,
                    "steps": [f"{self._deps.roles.role(s.role).name} {s.title}" for s in pipeline.steps],
                },
                pipeline_id=pipeline.id,
                title=f"📋 Plan: {messages.excerpt(pipeline.request_text, 60)}",
            )
            state["awaiting_approval_id"] = approval.id
        return state

    async def _node_execute_next(self, state: _PipelineGraphState) -> _PipelineGraphState:
        """Execute the step at ``idx``.

        Step failures become pipeline state transitions here; nothing but
        unexpected persistence errors escapes this node.
        """
        pipeline = await self._deps.pipelines.get(state["pipeline_id"])
        if pipeline is None or pipeline.status is not PipelineStatus.in_progress:
            state["_stopped"] = True
            return state

        idx = state["idx"]
        steps = list(pipeline.steps)
        step = steps[idx]
        role = self._deps.roles.role(step.role)
        agent = await self._agent_for(pipeline)
        prompt = self._step_prompt(pipeline, idx)

        steps[idx] = step.model_copy(update={"status": StepStatus.running})
        running = await self._deps.pipelines.update(
            pipeline.id,
            expected=[PipelineStatus.in_progress],
            steps=steps,
            current_step=step.role,
            step_index=idx,
        )
        if running is None:
            state["_stopped"] = True
            return state
        await self._mark_task(step, DocumentStatus.in_progress)
        await self._notify_progress(running, role, step)

        context = None
        if self._deps.memory is not None:
            context = await self._deps.memory.context_for(pipeline.workspace_id, pipeline.request_text)

        try:
            result = await asyncio.wait_for(
                self._deps.generation.generate(
                    pipeline.workspace_id,
                    step.task_kind,
                    prompt,
                    agent_id=pipeline.agent_id,
                    context=context,
                    system_prompt=role.system_prompt,
                ),
                timeout=self._deps.settings.step_timeout_seconds,
            )
        except BudgetExceeded as e:
            logger.info(f"Pipeline {pipeline.id} held by budget at step {step.phase.value}: {e.reason}")
            return await self._hold_for_budget(state, running, steps, idx, e.reason)
        except asyncio.TimeoutError:
            logger.warning(f"Pipeline {pipeline.id} step {step.phase.value} timed out")
            await self._fail_step(running, steps, idx, reason="timeout", text=messages.step_failed(step.title))
            state["_stopped"] = True
            return state
        except ProviderError as e:
            logger.error(f"Pipeline {pipeline.id} step {step.phase.value} failed: {e}")
            await self._fail_step(running, steps, idx, reason="provider", text=messages.step_failed(step.title))
            state["_stopped"] = True
            return state
        except Exception:
            logger.exception(f"Pipeline {pipeline.id} step {step.phase.value} failed unexpectedly")
            await self._fail_step(running, steps, idx, reason="error", text=messages.step_failed(step.title))
            state["_stopped"] = True
            return state

        output = result.text
        steps[idx] = step.model_copy(update={"status": StepStatus.completed, "output": output})
        next_idx = idx + 1
        revisions = running.revisions
        reopened: list[PipelineStep] = []

        if step.phase is PipelinePhase.review:
            score = parse_quality_score(output, self._deps.settings.default_quality_score)
            steps[idx] = steps[idx].model_copy(update={"quality_score": score})
            if score < self._deps.settings.revision_threshold and revisions < self._deps.settings.max_revisions:
                writer_idx = self._deps.roles.index_of(PipelinePhase.write)
                writer = steps[writer_idx]
                steps[idx] = steps[idx].model_copy(update={"status": StepStatus.needs_revision})
                steps[writer_idx] = writer.model_copy(
                    update={
                        "status": StepStatus.pending,
                        "input": (
                            f"REVISIÓN NECESARIA (Score: {score}/10)\n\n"
                            f"Feedback del revisor:\n{output}\n\n"
                            f"Texto original:\n{writer.output or ''}"
                        ),
                        "output": None,
                    }
                )
                next_idx = writer_idx
                revisions += 1
                reopened = steps[writer_idx : idx + 1]
                logger.info(f"Pipeline {pipeline.id} sent back to writer (score {score}/10)")

        updated = await self._deps.pipelines.update(
            pipeline.id,
            expected=[PipelineStatus.in_progress],
            steps=steps,
            step_index=next_idx,
            revisions=revisions,
        )
        if updated is None:
            state["_stopped"] = True
            return state
        state["idx"] = next_idx

        if reopened:
            for task_step in reopened:
                await self._mark_task(task_step, DocumentStatus.pending, progress_pct=0)
        else:
            await self._mark_task(steps[idx], DocumentStatus.done, progress_pct=100, output_preview=output[:500])
        await self._mark_project(updated)

        risk = classify_action_risk(output)
        if risk is RiskLevel.none and result.requires_approval_hint:
            # The backend flagged output the keyword classifier does not catch.
            risk = RiskLevel.routine
        if self._step_requires_approval(risk, agent, updated):
            approval = await self._deps.gate.propose(
                pipeline.workspace_id,
                pipeline.agent_id,
                ActionKind.agent_action,
                "pipeline_step",
                {
                    "pipeline_id": pipeline.id,
                    "phase": step.phase.value,
                    "role": step.role,
                    "risk": risk.value,
                    "output": output[:2000],
                },
                pipeline_id=pipeline.id,
                title=f"{role.name}: {step.title}",
            )
            state["awaiting_approval_id"] = approval.id
            return state

        if next_idx >= len(steps):
            state["_finished"] = True
        return state

    async def _node_pause_for_approval(self, state: _PipelineGraphState) -> _PipelineGraphState:
        """Pause node.

        Parks the pipeline in persisted state and tells the user what is
        waiting. The graph transitions to END after this node.
        """
        approval_id = state["awaiting_approval_id"]
        parked = await self._deps.pipelines.update(
            state["pipeline_id"],
            expected=[PipelineStatus.in_progress],
            status=PipelineStatus.awaiting_approval,
            awaiting_approval_id=approval_id,
            step_index=state["idx"],
        )
        if parked is None:
            logger.warning(f"Pipeline {state['pipeline_id']} changed before parking on approval {approval_id}")
            return state

        approval = await self._deps.gate.get(str(approval_id))
        if approval.action_kind is ActionKind.pipeline_delivery:
            text = messages.delivery_ready(parked)
        elif approval.action_kind is ActionKind.budget_hold:
            text = messages.budget_hold(str(approval.payload.get("reason") or ""))
        else:
            text = messages.approval_required(approval.title)
        await self._send(parked, text)
        logger.info(f"Pipeline parked: id={parked.id} approval={approval_id} kind={approval.action_kind.value}")
        return state

    async def _node_finish(self, state: _PipelineGraphState) -> _PipelineGraphState:
        """Finish node.

        Builds the result and either completes the pipeline or requests the
        delivery approval.
        """
        pipeline = await self._deps.pipelines.get(state["pipeline_id"])
        if pipeline is None or pipeline.status is not PipelineStatus.in_progress:
            return state

        result = "\n\n".join(
            s.output for s in pipeline.steps if s.phase in (PipelinePhase.write, PipelinePhase.final_review) and s.output
        )
        agent = await self._agent_for(pipeline)
        if agent.hitl_level not in DELIVERY_GATED_LEVELS:
            await self._complete(pipeline.id, result, expected=[PipelineStatus.in_progress])
            return state

        stored = await self._deps.pipelines.update(
            pipeline.id, expected=[PipelineStatus.in_progress], result=result, current_step=None
        )
        if stored is None:
            return state
        review = next((s for s in pipeline.steps if s.phase is PipelinePhase.review), None)
        approval = await self._deps.gate.propose(
            pipeline.workspace_id,
            pipeline.agent_id,
            ActionKind.pipeline_delivery,
            "pipeline",
            {
                "pipeline_id": pipeline.id,
                "result": result[:5000],
                "quality_score": review.quality_score if review else None,
            },
            pipeline_id=pipeline.id,
            title=f"📋 Resultado: {messages.excerpt(pipeline.request_text, 60)}",
        )
        state["awaiting_approval_id"] = approval.id
        return state

    def _route_after_start(self, state: _PipelineGraphState) -> str:
        if state.get("_stopped"):
            return "stop"
        if state.get("awaiting_approval_id"):
            return "pause"
        pipeline_steps = len(self._deps.roles.steps)
        if state["idx"] >= pipeline_steps:
            return "finish"
        return "execute"

    def _route_after_execute(self, state: _PipelineGraphState) -> str:
        """Route to pause/finish/continue/stop after executing a step."""
        if state.get("_stopped"):
            return "stop"
        if state.get("awaiting_approval_id"):
            return "pause"
        if state.get("_finished"):
            return "finish"
        return "continue"

    def _route_after_finish(self, state: _PipelineGraphState) -> str:
        return "pause" if state.get("awaiting_approval_id") else "done"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _parked(self, pipeline_id: str, approval_id: str) -> tuple[Pipeline, ApprovalRequest]:
        pipeline = await self.get(pipeline_id)
        approval = await self._deps.gate.get(approval_id)
        if approval.pipeline_id != pipeline_id:
            raise NotFoundError("approval", approval_id)
        if pipeline.status is not PipelineStatus.awaiting_approval or pipeline.awaiting_approval_id != approval_id:
            await self.retire_if_stale(approval)
            raise InvalidStateError(
                "pipeline", pipeline_id, pipeline.status.value, PipelineStatus.awaiting_approval.value
            )
        return pipeline, approval

    async def _state_error(self, pipeline_id: str) -> InvalidStateError:
        current = await self._deps.pipelines.get(pipeline_id)
        status = current.status.value if current else "missing"
        return InvalidStateError("pipeline", pipeline_id, status, PipelineStatus.awaiting_approval.value)

    async def _agent_for(self, pipeline: Pipeline) -> Agent:
        agent = None
        if pipeline.agent_id:
            agent = await self._deps.directory.get_agent(pipeline.agent_id)
        return agent or Agent(workspace_id=pipeline.workspace_id, owner_id=pipeline.user_id)

    def _step_prompt(self, pipeline: Pipeline, idx: int) -> str:
        step = pipeline.steps[idx]
        parts = [f"PEDIDO ORIGINAL: {pipeline.request_text}"]
        previous = "\n\n".join(
            f"--- Resultado de {self._deps.roles.role(s.role).name} ---\n{s.output}"
            for s in pipeline.steps[:idx]
            if s.output
        )
        if previous:
            parts.append(previous)
        if step.input:
            parts.append(step.input)
        parts.append(f"TU TAREA: {step.title}")
        return "\n\n".join(parts)

    async def _hold_for_budget(
        self, state: _PipelineGraphState, pipeline: Pipeline, steps: list[PipelineStep], idx: int, reason: str
    ) -> _PipelineGraphState:
        """Put the denied step back to pending and request a ``budget_hold`` approval."""
        step = steps[idx]
        steps[idx] = step.model_copy(update={"status": StepStatus.pending})
        held = await self._deps.pipelines.update(
            pipeline.id, expected=[PipelineStatus.in_progress], steps=steps, step_index=idx
        )
        if held is None:
            state["_stopped"] = True
            return state
        await self._mark_task(step, DocumentStatus.pending)
        approval = await self._deps.gate.propose(
            pipeline.workspace_id,
            pipeline.agent_id,
            ActionKind.budget_hold,
            "pipeline",
            {"pipeline_id": pipeline.id, "phase": step.phase.value, "reason": reason},
            pipeline_id=pipeline.id,
            title=f"💸 Presupuesto: {messages.excerpt(pipeline.request_text, 60)}",
        )
        state["idx"] = idx
        state["awaiting_approval_id"] = approval.id
        return state

    def _step_requires_approval(self, risk: RiskLevel, agent: Agent, pipeline: Pipeline) -> bool:
        # An approved plan covers routine step output.
        if risk is RiskLevel.routine and pipeline.plan_approved:
            return False
        return risk_requires_approval(risk, hitl=agent.hitl_level, autonomy=agent.autonomy_level)

    def _current_title(self, pipeline: Pipeline) -> str:
        if 0 <= pipeline.step_index < len(pipeline.steps):
            return pipeline.steps[pipeline.step_index].title
        return messages.excerpt(pipeline.request_text, 60)

    async def _complete(
        self, pipeline_id: str, result: str, *, expected: list[PipelineStatus]
    ) -> Optional[Pipeline]:
        completed = await self._deps.pipelines.update(
            pipeline_id,
            expected=expected,
            status=PipelineStatus.completed,
            result=result,
            awaiting_approval_id=None,
            current_step=None,
        )
        if completed is None:
            return None
        await self._mark_project(completed, DocumentStatus.done)
        await self._send(completed, messages.pipeline_completed(completed))
        if self._deps.memory is not None:
            review = next((s for s in completed.steps if s.phase is PipelinePhase.review), None)
            score = review.quality_score if review and review.quality_score is not None else "n/a"
            await self._deps.memory.append(
                completed.workspace_id,
                messages.excerpt(completed.request_text, 120),
                f"Pipeline completado (calidad {score}/10, revisiones {completed.revisions}): {result[:500]}",
                agent_id=completed.agent_id,
            )
        logger.info(f"Pipeline completed: id={pipeline_id}")
        return completed

    async def _fail_step(
        self, pipeline: Pipeline, steps: list[PipelineStep], idx: int, *, reason: str, text: str
    ) -> Optional[Pipeline]:
        steps[idx] = steps[idx].model_copy(update={"status": StepStatus.failed})
        return await self._fail(pipeline.id, reason=reason, text=text, steps=steps)

    async def _fail(
        self,
        pipeline_id: str,
        *,
        reason: str,
        text: str,
        steps: Optional[list[PipelineStep]] = None,
    ) -> Optional[Pipeline]:
        changes: dict = {
            "status": PipelineStatus.failed,
            "failure_reason": reason,
            "awaiting_approval_id": None,
        }
        if steps is not None:
            changes["steps"] = steps
        failed = await self._deps.pipelines.update(pipeline_id, expected=NON_TERMINAL_STATUSES, **changes)
        if failed is None:
            return None
        await self._close_failed_records(failed)
        await self._send(failed, text)
        logger.info(f"Pipeline failed: id={pipeline_id} reason={reason}")
        return failed

    # ------------------------------------------------------------------
    # Project and task documents
    # ------------------------------------------------------------------

    async def _open_records(self, pipeline: Pipeline) -> tuple[str, list[PipelineStep]]:
        """Create the project document and one task per step; return the project id and linked steps."""
        assert self._deps.documents is not None
        project = Document(
            workspace_id=pipeline.workspace_id,
            user_id=pipeline.user_id,
            title=f"📋 {messages.excerpt(pipeline.request_text, 80)}",
            kind=DocumentKind.project,
            status=DocumentStatus.in_progress.value,
            metadata={
                "source": "pipeline",
                "pipeline_id": pipeline.id,
                "original_request": pipeline.request_text,
                "platform": pipeline.channel.value,
                "agent_id": pipeline.agent_id,
                "progress_pct": 0,
            },
        )
        await self._deps.documents.create(project)

        steps: list[PipelineStep] = []
        for step in pipeline.steps:
            task = Document(
                workspace_id=pipeline.workspace_id,
                user_id=pipeline.user_id,
                title=f"{self._deps.roles.role(step.role).name} {step.title}",
                kind=DocumentKind.task,
                status=DocumentStatus.pending.value,
                metadata={
                    "source": "pipeline",
                    "parent_project_id": project.id,
                    "pipeline_id": pipeline.id,
                    "pipeline_phase": step.phase.value,
                    "pipeline_role": step.role,
                    "progress_pct": 0,
                },
            )
            await self._deps.documents.create(task)
            steps.append(step.model_copy(update={"task_id": task.id}))
        return project.id, steps

    async def _mark_task(self, step: PipelineStep, status: DocumentStatus, **metadata: Any) -> None:
        if self._deps.documents is None or step.task_id is None:
            return
        await self._deps.documents.update(step.task_id, status=status.value, metadata=metadata or None)

    async def _mark_project(self, pipeline: Pipeline, status: Optional[DocumentStatus] = None) -> None:
        if self._deps.documents is None or pipeline.project_id is None:
            return
        if status is DocumentStatus.done:
            progress = 100
        else:
            completed = sum(1 for s in pipeline.steps if s.status is StepStatus.completed)
            progress = round(completed * 100 / len(pipeline.steps)) if pipeline.steps else 0
        await self._deps.documents.update(
            pipeline.project_id,
            status=status.value if status is not None else None,
            metadata={"progress_pct": progress},
        )

    async def _close_failed_records(self, pipeline: Pipeline) -> None:
        for step in pipeline.steps:
            if step.status is StepStatus.completed:
                continue
            await self._mark_task(
                step, DocumentStatus.failed if step.status is StepStatus.failed else DocumentStatus.cancelled
            )
        await self._mark_project(pipeline, DocumentStatus.failed)

    async def _notify_progress(self, pipeline: Pipeline, role: RoleSpec, step: PipelineStep) -> None:
        if not self._deps.settings.progress_notifications or pipeline.channel is Platform.web:
            return
        await self._send(pipeline, messages.step_progress(role.name, step.title))

    async def _send(self, pipeline: Pipeline, text: str) -> bool:
        if not pipeline.reply_to:
            return False
        return await self._deps.gateway.send(
            OutboundMessage(to=pipeline.reply_to, platform=pipeline.channel, text=text)
        )
