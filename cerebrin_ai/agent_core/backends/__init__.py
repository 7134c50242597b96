"""Generative backends reachable through the provider router."""

from .base import GenerativeBackend
from .pydantic_ai import PydanticAIBackend, to_message_history, usage_tokens
from .simulated import SIMULATED_REPLY, SimulatedBackend

__all__ = [
    "GenerativeBackend",
    "PydanticAIBackend",
    "SIMULATED_REPLY",
    "SimulatedBackend",
    "to_message_history",
    "usage_tokens",
]
