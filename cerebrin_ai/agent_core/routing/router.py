from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Mapping, Optional, Sequence

from cerebrin_ai.core.errors import ProviderError

from ..backends.base import GenerativeBackend
from ..schemas.domain import ChatTurn, GenerationResult, TaskKind
from .table import DEFAULT_ROUTING_TABLE, RoutingTable

logger = logging.getLogger(__name__)


def compose_prompt(prompt: str, context: Optional[str] = None) -> str:
    if not context:
        return prompt
    return f"CONTEXTO:\n{context}\n\n---\n\nTAREA:\n{prompt}"


@dataclass(frozen=True)
class ProviderRouter:
    """
    Routes a generation request to one generative backend by task kind.

    Selection precedence:
    1. The table's preferred backend for the task kind, if enabled.
    2. The table's default backend, if enabled.
    3. The first enabled backend in registration order.

    A failure of the chosen backend is not retried on another one; it is
    wrapped in ``ProviderError`` with the original exception chained.

    Attributes:
        backends: Backends by name, in registration order.
        table: The routing table to apply.
    """

    backends: Mapping[str, GenerativeBackend]
    table: RoutingTable = field(default=DEFAULT_ROUTING_TABLE)

    def select(self, task_kind: TaskKind) -> str:
        preferred = self.table.preferred_for(task_kind)
        for candidate in (preferred, self.table.default):
            backend = self.backends.get(candidate)
            if backend is not None and backend.enabled:
                return candidate
        for name, backend in self.backends.items():
            if backend.enabled:
                return name
        raise ProviderError("none", task_kind, "no generative backend is enabled")

    async def route(
        self,
        task_kind: TaskKind,
        prompt: str,
        *,
        context: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> GenerationResult:
        name = self.select(task_kind)
        logger.debug(f"Routing task {task_kind.value} to backend {name}")
        try:
            return await self.backends[name].generate(
                task_kind, compose_prompt(prompt, context), system_prompt=system_prompt
            )
        except Exception as e:
            raise ProviderError(name, task_kind, str(e)) from e

    async def route_stream(
        self,
        task_kind: TaskKind,
        message: str,
        *,
        history: Sequence[ChatTurn] = (),
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[str]:
        name = self.select(task_kind)
        logger.debug(f"Streaming task {task_kind.value} from backend {name}")
        try:
            async for chunk in self.backends[name].stream(
                task_kind, message, history=history, system_prompt=system_prompt
            ):
                yield chunk
        except Exception as e:
            raise ProviderError(name, task_kind, str(e)) from e
