"""Intent classification module."""

from .types import Intent, IntentResult, DayPart
from .classifier import (
    IntentClassifier,
    PatternRule,
    get_intent_classifier,
    classify_intent,
)

__all__ = [
    # Types
    "Intent",
    "IntentResult",
    "DayPart",
    # Classifier
    "IntentClassifier",
    "PatternRule",
    "get_intent_classifier",
    "classify_intent",
]
