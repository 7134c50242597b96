"""Service wiring shared by the API endpoints."""

from .control_plane import (
    ControlPlane,
    build_backends,
    build_control_plane,
    build_gateway,
    get_control_plane,
    set_control_plane,
)

__all__ = [
    "ControlPlane",
    "build_backends",
    "build_control_plane",
    "build_gateway",
    "get_control_plane",
    "set_control_plane",
]
