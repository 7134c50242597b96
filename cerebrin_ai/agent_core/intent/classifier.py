from __future__ import annotations

import re
from types import MappingProxyType
from typing import Mapping

from ..schemas.domain import Intent

_STRIP_CHARS = "¡!¿?.,;:*_ \t\n"

COMMANDS: Mapping[str, Intent] = MappingProxyType(
    {
        "estado": Intent.status,
        "status": Intent.status,
        "aprobar": Intent.approve,
        "approve": Intent.approve,
        "aprobado": Intent.approve,
        "ok aprobar": Intent.approve,
        "rechazar": Intent.reject,
        "reject": Intent.reject,
        "tareas": Intent.list_tasks,
        "tasks": Intent.list_tasks,
        "ayuda": Intent.help,
        "help": Intent.help,
        "menu": Intent.help,
        "menú": Intent.help,
    }
)

ACTION_VERBS = frozenset(
    {
        "crear",
        "necesito",
        "quiero",
        "haz",
        "genera",
        "create",
        "need",
        "want",
        "make",
        "build",
        "write",
    }
)

SUBSTANTIAL_LENGTH = 20


def normalize_command(text: str) -> str:
    """Trim, case-fold, strip surrounding punctuation and collapse spaces."""
    collapsed = re.sub(r"\s+", " ", (text or "").strip().casefold())
    # Telegram style "/estado" commands.
    return collapsed.strip(_STRIP_CHARS).lstrip("/")


def is_substantial(text: str) -> bool:
    stripped = (text or "").strip()
    if len(stripped) > SUBSTANTIAL_LENGTH:
        return True
    words = normalize_command(stripped).split(" ")
    return bool(words) and words[0].strip(_STRIP_CHARS) in ACTION_VERBS


def classify(text: str, *, has_media: bool = False, has_active_pipeline: bool = False) -> Intent:
    """
    Map an inbound event to exactly one intent.

    Precedence: commands, media, an active pipeline, a substantial request,
    then plain chat.
    """
    command = COMMANDS.get(normalize_command(text))
    if command is not None:
        return command
    if has_media:
        return Intent.media
    if has_active_pipeline:
        return Intent.progress
    if is_substantial(text):
        return Intent.pipeline
    return Intent.chat
