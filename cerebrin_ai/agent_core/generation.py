from __future__ import annotations

"""Generation facade.

Every provider call of the control plane goes through ``GenerationService``
so that the budget is checked before spend and usage is recorded after it.
With the simulation toggle on, a canned reply is returned and neither the
guard nor the router is touched.
"""

import logging
from typing import AsyncIterator, Optional, Sequence

from .backends.simulated import SimulatedBackend
from .budget.guard import BudgetGuard
from .routing.router import ProviderRouter
from .schemas.domain import ChatTurn, GenerationResult, TaskKind

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
STREAM_COST_PER_TOKEN = 0.0000004


def estimate_tokens(text: str) -> int:
    if not text:
        return 0
    return max(1, len(text) // CHARS_PER_TOKEN)


class GenerationService:
    def __init__(
        self,
        *,
        router: ProviderRouter,
        guard: BudgetGuard,
        simulation_mode: bool = False,
        simulated: Optional[SimulatedBackend] = None,
    ) -> None:
        self.router = router
        self.guard = guard
        self.simulation_mode = simulation_mode
        self.simulated = simulated or SimulatedBackend()

    async def generate(
        self,
        workspace_id: str,
        task_kind: TaskKind,
        prompt: str,
        *,
        agent_id: Optional[str] = None,
        context: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> GenerationResult:
        """
        Check the budget, route the request and record its usage.

        Raises:
            BudgetExceeded: the workspace has exhausted a ceiling; no provider
                call was made.
            ProviderError: the selected backend failed.
        """
        if self.simulation_mode:
            return await self.simulated.generate(task_kind, prompt, system_prompt=system_prompt)

        await self.guard.ensure(workspace_id, agent_id)
        result = await self.router.route(task_kind, prompt, context=context, system_prompt=system_prompt)
        await self.guard.record(workspace_id, result.tokens_used, result.cost_usd)
        return result

    async def stream(
        self,
        workspace_id: str,
        task_kind: TaskKind,
        message: str,
        *,
        agent_id: Optional[str] = None,
        history: Sequence[ChatTurn] = (),
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        Stream an answer after a budget check.

        Streaming providers report no usage, so an estimate of the prompt plus
        the chunks actually delivered is recorded when the stream ends, is
        aborted or fails.
        """
        if self.simulation_mode:
            async for chunk in self.simulated.stream(task_kind, message, history=history, system_prompt=system_prompt):
                yield chunk
            return

        await self.guard.ensure(workspace_id, agent_id)
        delivered: list[str] = []
        try:
            async for chunk in self.router.route_stream(
                task_kind, message, history=history, system_prompt=system_prompt
            ):
                delivered.append(chunk)
                yield chunk
        finally:
            tokens = estimate_tokens(message) + estimate_tokens("".join(delivered))
            await self.guard.record(workspace_id, tokens, tokens * STREAM_COST_PER_TOKEN)
