"""Pydantic AI backend.

Wraps a ``pydantic_ai.Agent`` so every provider the framework supports
(Gemini, Groq, test models) is reachable through the ``GenerativeBackend``
interface. A fresh agent is built per call because the system prompt is
per-agent and per-workspace.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, List, Optional, Sequence

from pydantic_ai import Agent
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    TextPart,
    UserPromptPart,
)

from cerebrin_ai.core.logging_config import get_logger

from ..policy.risk import classify_action_risk
from ..schemas.domain import ChatTurn, GenerationResult, RiskLevel, TaskKind

logger = get_logger(__name__)


def to_message_history(history: Sequence[ChatTurn]) -> List[ModelMessage]:
    """Convert chat turns into pydantic_ai message history."""
    messages: List[ModelMessage] = []
    for turn in history:
        if turn.role == "model":
            messages.append(ModelResponse(parts=[TextPart(content=turn.text)]))
        else:
            messages.append(ModelRequest(parts=[UserPromptPart(content=turn.text)]))
    return messages


def usage_tokens(result: Any) -> int:
    """Total tokens reported by an agent run result.

    ``usage`` is a ``RunUsage`` attribute on current pydantic_ai releases and
    a method on older ones; both shapes are read.
    """
    usage = getattr(result, "usage", None)
    if callable(usage):
        usage = usage()
    if usage is None:
        return 0
    total = getattr(usage, "total_tokens", None)
    if total is None:
        total = (getattr(usage, "input_tokens", None) or 0) + (getattr(usage, "output_tokens", None) or 0)
    return int(total or 0)


class PydanticAIBackend:
    """Generative backend backed by a pydantic_ai model.

    Attributes:
        name: Backend name used in routing tables (``gemini``, ``groq``)
        model: A pydantic_ai model string (``google-gla:gemini-2.0-flash``) or
            model instance
        cost_per_token: Flat USD price applied to the reported total tokens
        enabled: Whether the router may select this backend
    """

    def __init__(
        self,
        name: str,
        model: Any,
        *,
        cost_per_token: float = 0.0,
        enabled: bool = True,
    ) -> None:
        self.name = name
        self.model = model
        self.cost_per_token = cost_per_token
        self.enabled = enabled

    def _build_agent(self, system_prompt: Optional[str]) -> Agent:
        kwargs: dict[str, Any] = {}
        if system_prompt:
            kwargs["system_prompt"] = system_prompt
        return Agent(self.model, **kwargs)

    async def generate(
        self,
        task_kind: TaskKind,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
    ) -> GenerationResult:
        agent = self._build_agent(system_prompt)
        logger.debug(f"Running backend {self.name} for task {task_kind.value} with prompt length {len(prompt)}")
        result = await agent.run(prompt)

        text = str(result.output)
        tokens = usage_tokens(result)
        return GenerationResult(
            text=text,
            tokens_used=tokens,
            cost_usd=tokens * self.cost_per_token,
            backend=self.name,
            requires_approval_hint=classify_action_risk(text) is not RiskLevel.none,
        )

    async def stream(
        self,
        task_kind: TaskKind,
        message: str,
        *,
        history: Sequence[ChatTurn] = (),
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[str]:
        agent = self._build_agent(system_prompt)
        logger.debug(f"Streaming from backend {self.name} for task {task_kind.value}")
        async with agent.run_stream(message, message_history=to_message_history(history)) as result:
            async for delta in result.stream_text(delta=True):
                if delta:
                    yield delta
