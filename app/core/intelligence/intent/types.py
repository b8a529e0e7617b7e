"""Intent types for conversation classification."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Intent(str, Enum):
    """Visitor intent categories."""

    # Sales
    PAY = "pay"                    # Wants the checkout link
    PRICING = "pricing"            # Cost questions

    # Scheduling
    HUMAN = "human"                # Wants a live person
    BOOK = "book"                  # Wants to schedule a call
    DAY = "day"                    # Names a day or part of day

    # Other
    CAPABILITY = "capability"      # "Can it handle ...?"
    FALLBACK = "fallback"


class DayPart(str, Enum):
    """Coarse part of the day a visitor can ask for."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


@dataclass(frozen=True)
class IntentResult:
    """Result of intent classification."""

    intent: Intent

    # Day hints found in the message, whatever the intent
    day_word: Optional[str] = None       # "tomorrow", "fri", "9/12"
    day_part: Optional[DayPart] = None

    # Name of the rule that fired, for debugging
    matched_rule: Optional[str] = None

    @property
    def is_scheduling(self) -> bool:
        """Check if intent leads to showing times."""
        return self.intent in {Intent.BOOK, Intent.DAY, Intent.HUMAN}

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "intent": self.intent.value,
            "day_word": self.day_word,
            "day_part": self.day_part.value if self.day_part else None,
            "matched_rule": self.matched_rule,
        }
