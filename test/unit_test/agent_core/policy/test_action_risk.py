from __future__ import annotations

import pytest

from cerebrin_ai.agent_core.policy.risk import (
    RiskClassifier,
    classify_action_risk,
    normalize_text,
    risk_requires_approval,
)
from cerebrin_ai.agent_core.schemas.domain import (
    AutonomyLevel,
    HitlLevel,
    RiskLevel,
)


def test_normalize_text_strips_accents_and_case() -> None:
    assert normalize_text("  Publicá   AHORA ") == "publica ahora"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Voy a eliminar el archivo viejo", RiskLevel.irreversible),
        ("Listo para publicar en LinkedIn", RiskLevel.irreversible),
        ("I will send the email tomorrow", RiskLevel.irreversible),
        ("Voy a crear una tarea nueva", RiskLevel.routine),
        ("Please update the draft and save it", RiskLevel.routine),
        ("Hola, ¿cómo estás?", RiskLevel.none),
        ("", RiskLevel.none),
    ],
)
def test_classify_action_risk(text: str, expected: RiskLevel) -> None:
    assert classify_action_risk(text) == expected


def test_irreversible_wins_over_routine() -> None:
    assert classify_action_risk("Voy a crear el post y publicar") == RiskLevel.irreversible


def test_terms_match_whole_words_only() -> None:
    # "sender" and "recreate" must not match "send" / "create".
    assert classify_action_risk("the sender field was recreated") == RiskLevel.none


def test_custom_vocabulary_is_instance_scoped() -> None:
    classifier = RiskClassifier(irreversible_terms=("archivar",), routine_terms=())
    assert classify_action_risk("vamos a archivar", classifier) == RiskLevel.irreversible
    assert classify_action_risk("vamos a archivar") == RiskLevel.none


@pytest.mark.parametrize("hitl", list(HitlLevel))
@pytest.mark.parametrize("autonomy", list(AutonomyLevel))
def test_irreversible_always_requires_approval(hitl: HitlLevel, autonomy: AutonomyLevel) -> None:
    assert risk_requires_approval(RiskLevel.irreversible, hitl=hitl, autonomy=autonomy)


@pytest.mark.parametrize("hitl", list(HitlLevel))
def test_no_risk_never_requires_approval(hitl: HitlLevel) -> None:
    assert not risk_requires_approval(RiskLevel.none, hitl=hitl, autonomy=AutonomyLevel.observer)


def test_routine_is_unattended_only_for_autonomous_agents() -> None:
    assert not risk_requires_approval(RiskLevel.routine, hitl=HitlLevel.autonomous, autonomy=AutonomyLevel.executor)
    assert risk_requires_approval(RiskLevel.routine, hitl=HitlLevel.plan_only, autonomy=AutonomyLevel.executor)
    assert risk_requires_approval(RiskLevel.routine, hitl=HitlLevel.autonomous, autonomy=AutonomyLevel.observer)
