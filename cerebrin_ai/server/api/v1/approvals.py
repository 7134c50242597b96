"""
Approvals API Endpoints.

This module provides endpoints for managing human-in-the-loop approvals.
It allows listing pending approvals and submitting decisions (approve/reject).
Decisions on pipeline-bound approvals resume or fail the pipeline.
"""

from typing import List

from fastapi import APIRouter, HTTPException, Query, status

from cerebrin_ai.agent_core.schemas.domain import ApprovalRequest, ApprovalStatus
from cerebrin_ai.server.schemas import ApprovalDecisionSubmit, ErrorResponse
from cerebrin_ai.server.services.deps import ControlPlaneDep

router = APIRouter()


@router.get(
    "/",
    response_model=List[ApprovalRequest],
    summary="List Pending Approvals",
    description="Retrieve the pending approval requests of a workspace, oldest first.",
    response_description="A list of pending approval objects.",
)
async def list_approvals(
    control_plane: ControlPlaneDep,
    workspace_id: str = Query(..., description="Workspace whose approvals are listed."),
    limit: int = Query(50, ge=1, le=200),
):
    return await control_plane.gate.pending(workspace_id, limit=limit)


@router.get(
    "/{approval_id}",
    response_model=ApprovalRequest,
    summary="Get Approval",
    responses={404: {"model": ErrorResponse}},
)
async def get_approval(approval_id: str, control_plane: ControlPlaneDep):
    return await control_plane.gate.get(approval_id)


@router.post(
    "/{approval_id}",
    response_model=ApprovalRequest,
    summary="Submit Approval Decision",
    description="Submit a decision (approve/reject) for a specific approval request.",
    response_description="The resolved approval object.",
    responses={
        404: {"model": ErrorResponse, "description": "Approval not found"},
        409: {"model": ErrorResponse, "description": "Approval already decided"},
        422: {"description": "Decision is not 'approved' or 'rejected'"},
    },
)
async def submit_approval(approval_id: str, submission: ApprovalDecisionSubmit, control_plane: ControlPlaneDep):
    """
    Submit approval decision.

    Resolves a pending approval request exactly once. When the approval parks
    a pipeline, approving resumes the pipeline and rejecting fails it.
    """
    if submission.decision == ApprovalStatus.pending:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="decision must be approved or rejected"
        )

    approval = await control_plane.gate.get(approval_id)
    orchestrator = control_plane.orchestrator
    if approval.pipeline_id and submission.decision == ApprovalStatus.approved:
        await orchestrator.approve(approval.pipeline_id, approval_id, decided_by=submission.decided_by)
    elif approval.pipeline_id:
        await orchestrator.reject(approval.pipeline_id, approval_id, decided_by=submission.decided_by)
    else:
        return await control_plane.gate.resolve(approval_id, submission.decision, decided_by=submission.decided_by)
    return await control_plane.gate.get(approval_id)
