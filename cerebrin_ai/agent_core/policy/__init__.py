"""Risk policy: closed risk classification and HITL approval requirements."""

from .risk import (
    DEFAULT_CLASSIFIER,
    RiskClassifier,
    classify_action_risk,
    normalize_text,
    risk_requires_approval,
)

__all__ = [
    "DEFAULT_CLASSIFIER",
    "RiskClassifier",
    "classify_action_risk",
    "normalize_text",
    "risk_requires_approval",
]
