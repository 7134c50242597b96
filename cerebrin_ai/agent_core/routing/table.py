from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from ..schemas.domain import TaskKind


def _default_preferences() -> Mapping[TaskKind, str]:
    return MappingProxyType(
        {
            TaskKind.chat: "gemini",
            TaskKind.plan: "gemini",
            TaskKind.document: "gemini",
            TaskKind.extraction: "groq",
            TaskKind.summarization: "groq",
        }
    )


@dataclass(frozen=True)
class RoutingTable:
    """
    Task-kind to backend preferences.

    Attributes:
        preferred: Backend name preferred for each task kind.
        default: Backend used when the preferred one is missing or disabled.
    """

    preferred: Mapping[TaskKind, str] = field(default_factory=_default_preferences)
    default: str = "gemini"

    def preferred_for(self, task_kind: TaskKind) -> str:
        return self.preferred.get(task_kind, self.default)


DEFAULT_ROUTING_TABLE = RoutingTable()
