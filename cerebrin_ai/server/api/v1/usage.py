"""
Usage Statistics Endpoints.

Report a workspace's consumption for the current billing period together
with whether its budget still allows generation.
"""

from fastapi import APIRouter

from cerebrin_ai.server.schemas import UsageResponse
from cerebrin_ai.server.services.deps import ControlPlaneDep

router = APIRouter()


@router.get(
    "/{workspace_id}",
    response_model=UsageResponse,
    summary="Get Usage",
    description="Retrieve this period's token and USD consumption for a workspace.",
)
async def get_usage(workspace_id: str, control_plane: ControlPlaneDep):
    counter = await control_plane.guard.usage(workspace_id)
    decision = await control_plane.guard.check(workspace_id)
    return UsageResponse(
        workspace_id=workspace_id,
        period=counter.period,
        tokens=counter.tokens,
        cost_usd=counter.cost_usd,
        allowed=decision.allowed,
        reason=decision.reason,
    )
