from __future__ import annotations

"""Approval gate (human in the loop).

``ApprovalGate`` persists proposed side-effecting actions and is the only
component allowed to change an approval's status. Resolution is a
conditional write: the first decision wins, any later attempt raises
``InvalidStateError`` and leaves the stored decision untouched.

Pipeline-bound approvals are never applied here. The pipeline orchestrator
resolves them through the gate and then resumes the pipeline itself, so the
remaining steps still run.
"""

import logging
from typing import Any, Dict, Optional

from cerebrin_ai.core.errors import InvalidStateError, NotFoundError

from ..repos.interfaces import ApprovalRepository, DirectoryRepository
from ..schemas.domain import ActionKind, ApprovalRequest, ApprovalStatus

logger = logging.getLogger(__name__)

APPROVED_SCORE_DELTA = 2
REJECTED_SCORE_DELTA = -3

# Budget holds say nothing about the agent's work.
UNSCORED_ACTION_KINDS = (ActionKind.budget_hold,)


class ApprovalGate:
    def __init__(self, *, approvals: ApprovalRepository, directory: Optional[DirectoryRepository] = None) -> None:
        self._approvals = approvals
        self._directory = directory

    async def propose(
        self,
        workspace_id: str,
        agent_id: Optional[str],
        action_kind: ActionKind,
        entity_type: str,
        payload: Dict[str, Any],
        target_id: Optional[str] = None,
        *,
        pipeline_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> ApprovalRequest:
        """Persist a pending approval request and return it."""
        approval = ApprovalRequest(
            workspace_id=workspace_id,
            agent_id=agent_id,
            pipeline_id=pipeline_id,
            action_kind=action_kind,
            entity_type=entity_type,
            payload=dict(payload),
            target_id=target_id,
            title=title or f"{action_kind.value} {entity_type}",
        )
        await self._approvals.create(approval)
        logger.info(
            f"Approval proposed: id={approval.id} workspace={workspace_id} "
            f"kind={action_kind.value} pipeline={pipeline_id}"
        )
        return approval

    async def get(self, approval_id: str) -> ApprovalRequest:
        approval = await self._approvals.get(approval_id)
        if approval is None:
            raise NotFoundError("ApprovalRequest", approval_id)
        return approval

    async def pending(self, workspace_id: str, limit: int = 50) -> list[ApprovalRequest]:
        return await self._approvals.list_pending(workspace_id, limit=limit)

    async def resolve(
        self,
        approval_id: str,
        decision: ApprovalStatus,
        *,
        decided_by: Optional[str] = None,
        adjust_score: bool = True,
    ) -> ApprovalRequest:
        """
        Resolve a pending request exactly once.

        Args:
            approval_id: The approval to resolve.
            decision: ``approved`` or ``rejected``.
            decided_by: Optional actor recorded with the decision.
            adjust_score: Whether the decision moves the agent's resonance
                score. Budget holds never do.

        Returns:
            The resolved approval.

        Raises:
            NotFoundError: The approval does not exist.
            InvalidStateError: The approval is no longer pending.
            ValueError: ``decision`` is ``pending``.
        """
        if decision == ApprovalStatus.pending:
            raise ValueError("decision must be 'approved' or 'rejected'")

        current = await self.get(approval_id)
        applied = await self._approvals.resolve(approval_id, status=decision, decided_by=decided_by)
        if not applied:
            latest = await self.get(approval_id)
            raise InvalidStateError("ApprovalRequest", approval_id, latest.status.value, ApprovalStatus.pending.value)

        resolved = await self.get(approval_id)
        logger.info(f"Approval resolved: id={approval_id} decision={decision.value} by={decided_by}")

        scored = adjust_score and current.action_kind not in UNSCORED_ACTION_KINDS
        if self._directory is not None and current.agent_id and scored:
            delta = APPROVED_SCORE_DELTA if decision == ApprovalStatus.approved else REJECTED_SCORE_DELTA
            await self._directory.adjust_resonance_score(current.agent_id, delta)
        return resolved
