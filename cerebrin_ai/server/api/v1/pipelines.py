"""
Pipelines API Endpoints.

Start pipelines from the web channel and inspect their progress.
"""

from fastapi import APIRouter, Query, status

from cerebrin_ai.agent_core.schemas.domain import Pipeline, Platform
from cerebrin_ai.core.errors import NotFoundError
from cerebrin_ai.server.schemas import ErrorResponse, PipelineCreate
from cerebrin_ai.server.services.deps import ControlPlaneDep

router = APIRouter()


@router.post(
    "/",
    response_model=Pipeline,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start Pipeline",
    description="Create a pipeline for a request and run it in the background.",
    responses={
        402: {"model": ErrorResponse, "description": "Workspace budget exhausted"},
        409: {"model": ErrorResponse, "description": "Duplicate request or pipeline already active"},
    },
)
async def create_pipeline(body: PipelineCreate, control_plane: ControlPlaneDep):
    if not control_plane.generation.simulation_mode:
        await control_plane.guard.ensure(body.workspace_id, body.agent_id)
    pipeline = await control_plane.orchestrator.create(
        body.workspace_id,
        body.user_id,
        body.agent_id,
        body.request_text.strip(),
        channel=Platform.web,
    )
    control_plane.pool.submit(pipeline.id, control_plane.orchestrator.run)
    return pipeline


@router.get(
    "/active",
    response_model=Pipeline,
    summary="Get Active Pipeline",
    description="Return the user's non-terminal pipeline in a workspace.",
    responses={404: {"model": ErrorResponse}},
)
async def get_active_pipeline(
    control_plane: ControlPlaneDep,
    user_id: str = Query(...),
    workspace_id: str = Query(...),
):
    pipeline = await control_plane.orchestrator.active_for(user_id, workspace_id)
    if pipeline is None:
        raise NotFoundError("Pipeline", f"active:{user_id}:{workspace_id}")
    return pipeline


@router.get(
    "/{pipeline_id}",
    response_model=Pipeline,
    summary="Get Pipeline",
    responses={404: {"model": ErrorResponse}},
)
async def get_pipeline(pipeline_id: str, control_plane: ControlPlaneDep):
    return await control_plane.orchestrator.get(pipeline_id)
