"""
API Schemas.

This module contains Pydantic models used for API request bodies and response validation.
These schemas define the interface contract between the client and the server.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from cerebrin_ai.agent_core.schemas.domain import ApprovalStatus


class ApprovalDecisionSubmit(BaseModel):
    """
    Schema for deciding a pending approval request.

    A decision applies exactly once; deciding an already resolved request is
    answered with 409.
    """

    decision: ApprovalStatus = Field(
        ...,
        description="Either 'approved' or 'rejected'.",
        examples=[ApprovalStatus.approved],
    )
    decided_by: Optional[str] = Field(
        default=None,
        description="Identifier of the human who decided.",
        examples=["user-42"],
    )

    model_config = ConfigDict(json_schema_extra={"example": {"decision": "approved", "decided_by": "user-42"}})


class PipelineCreate(BaseModel):
    """Schema for starting a pipeline from the web channel."""

    workspace_id: str = Field(..., description="Workspace the pipeline runs in.", examples=["ws-1"])
    user_id: str = Field(..., description="User who requested the work.", examples=["user-42"])
    agent_id: Optional[str] = Field(default=None, description="Agent whose settings govern approvals.")
    request_text: str = Field(
        ...,
        min_length=1,
        description="What the pipeline should produce.",
        examples=["Necesito un informe sobre el mercado de café en Colombia"],
    )


class UsageResponse(BaseModel):
    """Consumption of a workspace for the current billing period."""

    workspace_id: str
    period: str
    tokens: int
    cost_usd: float
    allowed: bool
    reason: Optional[str] = None


class ErrorResponse(BaseModel):
    """Body of every domain error response."""

    detail: str
    error_type: str
