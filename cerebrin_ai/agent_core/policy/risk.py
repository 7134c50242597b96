from __future__ import annotations

"""Risk classification and approval requirements.

Free text (model output, chat replies) and structured proposals are first
mapped onto the closed ``RiskLevel`` set; every gating decision downstream
switches on that value instead of re-matching strings.

Safety floor
------------

Irreversible actions (delete, publish, external send or integration) always
require approval, whatever the agent's HITL level. Routine mutations
(create, update, save) require approval unless the agent runs with
``HitlLevel.autonomous``; observer agents never act unattended.
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import Iterable, Optional

from ..schemas.domain import AutonomyLevel, HitlLevel, RiskLevel

IRREVERSIBLE_TERMS: tuple[str, ...] = (
    # es
    "eliminar",
    "elimina",
    "borrar",
    "borra",
    "publicar",
    "publica",
    "enviar",
    "envia",
    "enviare",
    "reenviar",
    "crear en drive",
    "modificar el archivo",
    # en
    "delete",
    "remove",
    "drop",
    "publish",
    "send",
    "email",
    "post to",
    "webhook",
)

ROUTINE_TERMS: tuple[str, ...] = (
    # es
    "crear",
    "creare",
    "actualizar",
    "actualizare",
    "modificar",
    "guardar",
    "guardare",
    "programar",
    # en
    "create",
    "update",
    "modify",
    "save",
    "schedule",
)


def normalize_text(text: str) -> str:
    """Lower-case, strip accents and collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return re.sub(r"\s+", " ", stripped.casefold()).strip()


def _compile(terms: Iterable[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(term) for term in sorted(terms, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})\b")


@dataclass(frozen=True)
class RiskClassifier:
    """Keyword classifier over normalized text.

    Instances are immutable; alternative vocabularies are passed in at
    construction rather than patched into module state.
    """

    irreversible_terms: tuple[str, ...] = IRREVERSIBLE_TERMS
    routine_terms: tuple[str, ...] = ROUTINE_TERMS

    def classify(self, text: str) -> RiskLevel:
        normalized = normalize_text(text)
        if not normalized:
            return RiskLevel.none
        if _compile(self.irreversible_terms).search(normalized):
            return RiskLevel.irreversible
        if _compile(self.routine_terms).search(normalized):
            return RiskLevel.routine
        return RiskLevel.none


DEFAULT_CLASSIFIER = RiskClassifier()


def classify_action_risk(text: str, classifier: Optional[RiskClassifier] = None) -> RiskLevel:
    """Classify free text describing or proposing an action."""
    return (classifier or DEFAULT_CLASSIFIER).classify(text)


def risk_requires_approval(risk: RiskLevel, *, hitl: HitlLevel, autonomy: AutonomyLevel) -> bool:
    """
    Determine whether an action at ``risk`` must wait for a human.

    Args:
        risk: The classified risk of the action.
        hitl: The agent's HITL level.
        autonomy: The agent's autonomy level.

    Returns:
        True if approval is required, False otherwise.
    """
    if risk == RiskLevel.irreversible:
        return True
    if risk == RiskLevel.none:
        return False
    if autonomy == AutonomyLevel.observer:
        return True
    return hitl != HitlLevel.autonomous
