from __future__ import annotations

from typing import AsyncIterator, Optional, Sequence

from ..schemas.domain import ChatTurn, GenerationResult, TaskKind

SIMULATED_REPLY = (
    "[Modo simulación] Respuesta de ejemplo generada sin llamar a ningún proveedor. "
    "Desactiva SIMULATION_MODE para obtener respuestas reales."
)


class SimulatedBackend:
    """Canned, zero-cost backend used when the simulation toggle is on."""

    name = "simulated"

    def __init__(self, reply: str = SIMULATED_REPLY) -> None:
        self.reply = reply
        self.enabled = True

    async def generate(
        self,
        task_kind: TaskKind,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
    ) -> GenerationResult:
        return GenerationResult(text=self.reply, tokens_used=0, cost_usd=0.0, backend=self.name)

    async def stream(
        self,
        task_kind: TaskKind,
        message: str,
        *,
        history: Sequence[ChatTurn] = (),
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[str]:
        for word in self.reply.split(" "):
            yield word + " "
