"""
Intelligence Layer Module

Provides rule-based intent classification and entity extraction for the
scheduling assistant, plus the client-held conversation session.

Usage:
    from app.core.intelligence import classify_intent, extract_entities

    result = classify_intent("any times friday afternoon?")
    print(result.intent)    # Intent.BOOK
    print(result.day_part)  # DayPart.AFTERNOON

    entities = extract_entities("friday works, jane@acme.com", today)
    print(entities.email)   # "jane@acme.com"
"""

# Intent Classification
from app.core.intelligence.intent.types import Intent, IntentResult, DayPart
from app.core.intelligence.intent.classifier import (
    IntentClassifier,
    get_intent_classifier,
    classify_intent,
)

# Entity Extraction
from app.core.intelligence.entities.types import ExtractedEntities
from app.core.intelligence.entities.extractor import (
    EntityExtractor,
    get_entity_extractor,
    extract_entities,
)

__all__ = [
    # Intent
    "Intent",
    "IntentResult",
    "DayPart",
    "IntentClassifier",
    "get_intent_classifier",
    "classify_intent",
    # Entities
    "ExtractedEntities",
    "EntityExtractor",
    "get_entity_extractor",
    "extract_entities",
]
