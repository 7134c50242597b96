"""
Control Plane Dependency.

Provides the process-wide ControlPlane instance for API endpoints.
"""

from typing import Annotated

from fastapi import Depends

from cerebrin_ai.server.services.control_plane import ControlPlane, get_control_plane

ControlPlaneDep = Annotated[ControlPlane, Depends(get_control_plane)]
