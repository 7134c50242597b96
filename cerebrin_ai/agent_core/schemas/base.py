"""Pydantic base schema utilities for control plane models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Base Pydantic model for all domain schemas.

    - ``populate_by_name=True``: models accept both alias and field names, so
      gateway payloads (``from``) and Python code (``sender``) share one model.
    - ``extra="forbid"``: unknown fields are rejected instead of silently kept.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
    )
