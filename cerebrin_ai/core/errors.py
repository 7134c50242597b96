from __future__ import annotations

"""Error taxonomy of the control plane.

Every failure the control plane knows how to recover from has its own class
here. The intent router, the pipeline orchestrator and the HTTP layer switch
on these types; anything else is treated as unexpected and logged.
"""

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from cerebrin_ai.agent_core.schemas.domain import Pipeline


class ControlPlaneError(Exception):
    pass


class IdentityNotFound(ControlPlaneError):
    def __init__(self, handle: str) -> None:
        self.handle = handle
        super().__init__(f"No identity linked to handle '{handle}'")


class WorkspaceMissing(ControlPlaneError):
    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"User '{user_id}' has no workspace")


class NotFoundError(ControlPlaneError):
    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: '{entity_id}'")


class ConflictError(ControlPlaneError):
    """Raised when a second active pipeline would be created.

    ``existing`` carries the pipeline that blocks the creation when it is
    known, so callers can answer with its progress.
    """

    def __init__(self, message: str, existing: Optional["Pipeline"] = None) -> None:
        self.existing = existing
        super().__init__(message)


class ProviderError(ControlPlaneError):
    def __init__(self, backend: str, task_kind: Any, message: str = "") -> None:
        self.backend = backend
        self.task_kind = str(getattr(task_kind, "value", task_kind))
        detail = f": {message}" if message else ""
        super().__init__(f"Backend '{backend}' failed for task '{self.task_kind}'{detail}")


class BudgetExceeded(ControlPlaneError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class InvalidStateError(ControlPlaneError):
    def __init__(self, entity: str, entity_id: str, current: str, expected: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.expected = expected
        super().__init__(f"{entity} '{entity_id}' is '{current}', expected '{expected}'")
