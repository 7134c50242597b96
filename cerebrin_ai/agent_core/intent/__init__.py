"""Inbound chat event handling: intent classification and dispatch."""

from .classifier import ACTION_VERBS, COMMANDS, classify, is_substantial, normalize_command
from .router import InboundOutcome, IntentRouter

__all__ = [
    "ACTION_VERBS",
    "COMMANDS",
    "InboundOutcome",
    "IntentRouter",
    "classify",
    "is_substantial",
    "normalize_command",
]
