from __future__ import annotations

"""Backend abstraction for generative providers.

A backend turns a prompt into text. It knows nothing about workspaces,
budgets or approvals; callers route to it through ``ProviderRouter`` and
account for its usage through ``BudgetGuard``.
"""

from typing import AsyncIterator, Optional, Protocol, Sequence, runtime_checkable

from ..schemas.domain import ChatTurn, GenerationResult, TaskKind


@runtime_checkable
class GenerativeBackend(Protocol):
    name: str
    enabled: bool

    async def generate(
        self,
        task_kind: TaskKind,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
    ) -> GenerationResult:
        """Produce a complete answer for ``prompt``."""
        ...

    def stream(
        self,
        task_kind: TaskKind,
        message: str,
        *,
        history: Sequence[ChatTurn] = (),
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """Yield the answer to ``message`` as text deltas."""
        ...
