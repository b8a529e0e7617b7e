"""Entity types extracted from visitor messages."""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from app.core.intelligence.intent.types import DayPart


@dataclass
class ExtractedEntities:
    """Entities found in one message."""

    # Contact
    email: Optional[str] = None
    email_attempt: bool = False          # Contains "@" but no valid address

    # Date
    date: Optional[date] = None          # Resolved in the booking zone
    day_word: Optional[str] = None       # "tomorrow", "fri", "9/12"
    day_part: Optional[DayPart] = None

    # Time
    time_minutes: Optional[int] = None   # Wall clock minutes after midnight

    def has_any(self) -> bool:
        """Check if any entities were extracted."""
        return any([self.email, self.date, self.day_part, self.time_minutes is not None])

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "email": self.email,
            "date": self.date.isoformat() if self.date else None,
            "day_word": self.day_word,
            "day_part": self.day_part.value if self.day_part else None,
            "time_minutes": self.time_minutes,
        }
