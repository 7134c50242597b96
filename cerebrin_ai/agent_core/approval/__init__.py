"""Approval gate for side-effecting actions that need a human decision."""

from .gate import ApprovalGate

__all__ = ["ApprovalGate"]
