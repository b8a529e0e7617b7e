"""
Pattern-based intent classification.

Rules are tried in order and the first match wins:

    pay > pricing > human > book > day > loose clock time (book)
        > capability > fallback

Classification is a pure function of the normalized text, so the same
utterance always gives the same result. A bare mention of "appointments"
without a scheduling verb is a capability question, not a booking request.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from .types import DayPart, Intent, IntentResult

logger = logging.getLogger(__name__)


# Day words match on word boundaries only, so "month" never reads as "mon"
DAY_WORD_PATTERN = re.compile(
    r"\b(today|tonight|tomorrow|tmrw|tmr"
    r"|sun(?:day)?|mon(?:day)?|tue(?:s|sday)?|wed(?:nesday)?"
    r"|thu(?:r|rs|rsday)?|fri(?:day)?|sat(?:urday)?)\b"
)
DATE_PATTERN = re.compile(r"\b(\d{4}-\d{2}-\d{2}|\d{1,2}/\d{1,2})\b")

DAY_PART_PATTERNS: tuple[tuple[DayPart, re.Pattern], ...] = (
    (DayPart.MORNING, re.compile(r"\b(morning|mornings|early)\b")),
    (DayPart.AFTERNOON, re.compile(r"\b(afternoon|afternoons|midday|lunch)\b")),
    (DayPart.EVENING, re.compile(r"\b(evening|evenings|tonight|night|after work)\b")),
)

LOOSE_TIME_PATTERNS = (
    re.compile(r"\b(around|about|after|before|by|at)\s+\d{1,2}(:\d{2})?\s*(am|pm)?\b"),
    re.compile(r"\b\d{1,2}:\d{2}\s*(am|pm)?\b"),
    re.compile(r"\b\d{1,2}\s*(am|pm)\b"),
)


def normalize(text: Optional[str]) -> str:
    """Lowercase, trim and collapse whitespace."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text.strip().lower())


@dataclass(frozen=True)
class PatternRule:
    """One ordered classification rule."""

    name: str
    intent: Intent
    patterns: tuple[re.Pattern, ...]

    def matches(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self.patterns)


DEFAULT_RULES: tuple[PatternRule, ...] = (
    PatternRule(
        "pay",
        Intent.PAY,
        (
            re.compile(r"\b(pay|payment|checkout|check out|buy|purchase|subscribe|sign me up)\b"),
        ),
    ),
    PatternRule(
        "pricing",
        Intent.PRICING,
        (
            re.compile(r"\b(price|prices|pricing|cost|costs|fee|fees|how much|per month|monthly|setup fee)\b"),
        ),
    ),
    PatternRule(
        "human",
        Intent.HUMAN,
        (
            re.compile(
                r"\b(talk|speak|chat)\s+(to|with)\s+(a |an |some |the )?"
                r"(human|person|someone|somebody|rep|representative|real person|founder|team)\b"
            ),
            re.compile(r"\b(real|live|actual) (person|human)\b"),
        ),
    ),
    PatternRule(
        "book",
        Intent.BOOK,
        (
            re.compile(r"\b(book|schedule|set up|setup|hop on|arrange|grab)\b.*\b(call|meeting|meet|phone|demo|chat|time)\b"),
            re.compile(r"\b(available|availability|openings?|time ?slots?|slots?)\b"),
            re.compile(r"\b(what|which|any|other|more|open|free|show me)\s+times?\b"),
        ),
    ),
    PatternRule(
        "day",
        Intent.DAY,
        (
            DAY_WORD_PATTERN,
            DATE_PATTERN,
            re.compile(r"\b(morning|afternoon|evening|tonight)\b"),
        ),
    ),
    PatternRule("time", Intent.BOOK, LOOSE_TIME_PATTERNS),
    PatternRule(
        "capability",
        Intent.CAPABILITY,
        (
            re.compile(r"\b(can it|can you|can your|is it possible|does it|do you|support|handle|integrate|work with)\b"),
            re.compile(r"\b(appointments?|booking|bookings|sales|support|instagram|whatsapp|sms|texts?|dms?)\b"),
        ),
    ),
)


def detect_day_word(text: str) -> Optional[str]:
    """First day word or date in normalized text."""
    match = DAY_WORD_PATTERN.search(text) or DATE_PATTERN.search(text)
    return match.group(1) if match else None


def detect_day_part(text: str) -> Optional[DayPart]:
    """Part of day named in normalized text ("tonight" counts as evening)."""
    for day_part, pattern in DAY_PART_PATTERNS:
        if pattern.search(text):
            return day_part
    return None


class IntentClassifier:
    """
    Ordered regex classifier.

    Rules can be swapped for testing or tuning; the default order is the
    product's routing priority.
    """

    def __init__(self, rules: Optional[Sequence[PatternRule]] = None):
        self._rules = tuple(rules) if rules is not None else DEFAULT_RULES

    def classify(self, utterance: Optional[str]) -> IntentResult:
        """
        Classify a visitor message.

        Args:
            utterance: Raw message text

        Returns:
            IntentResult with intent and any day hints
        """
        text = normalize(utterance)
        if not text:
            return IntentResult(intent=Intent.FALLBACK, matched_rule="empty")

        day_word = detect_day_word(text)
        day_part = detect_day_part(text)

        for rule in self._rules:
            if rule.matches(text):
                logger.debug(f"Intent rule '{rule.name}' matched -> {rule.intent.value}")
                return IntentResult(
                    intent=rule.intent,
                    day_word=day_word,
                    day_part=day_part,
                    matched_rule=rule.name,
                )

        return IntentResult(
            intent=Intent.FALLBACK,
            day_word=day_word,
            day_part=day_part,
        )


# Singleton instance
_classifier: Optional[IntentClassifier] = None


def get_intent_classifier() -> IntentClassifier:
    """Get singleton intent classifier."""
    global _classifier
    if _classifier is None:
        _classifier = IntentClassifier()
    return _classifier


def classify_intent(utterance: Optional[str]) -> IntentResult:
    """Convenience function to classify intent."""
    return get_intent_classifier().classify(utterance)
