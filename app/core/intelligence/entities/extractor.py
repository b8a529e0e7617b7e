"""
Rule-based entity extraction.

Extracts: email addresses, dates (day words, m/d, ISO), part of day.
Dates are resolved against "today" in the booking zone, which the caller
supplies, so extraction stays deterministic.
"""

import logging
import re
from datetime import date, timedelta
from typing import Optional

from app.core.intelligence.intent.classifier import detect_day_part, detect_day_word, normalize
from .types import ExtractedEntities

logger = logging.getLogger(__name__)


EMAIL_PATTERN = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)

# Sunday-based to match the rest of the scheduling core
WEEKDAY_PREFIXES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")

# How far ahead a bare weekday name may resolve
MAX_WEEKDAY_LOOKAHEAD = 21

# "10am", "2:30 pm", "14:00", "at 3"; never the digits of a date like 9/12
CLOCK_TIME_PATTERN = re.compile(
    r"(?<![\d/])\b(at\s+)?(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\b(?![/\d:])"
)

# Bare hours below this read as afternoon ("thu at 2")
AFTERNOON_BEFORE_HOUR = 8


def extract_email(text: Optional[str]) -> Optional[str]:
    """First email address in text, lowercased."""
    if not text:
        return None
    match = EMAIL_PATTERN.search(text)
    return match.group(0).lower() if match else None


def is_valid_email(value: Optional[str]) -> bool:
    """Whole-string email check."""
    return bool(value) and EMAIL_PATTERN.fullmatch(value.strip()) is not None


def strip_email(text: Optional[str]) -> str:
    """Text with any email addresses removed."""
    if not text:
        return ""
    return EMAIL_PATTERN.sub(" ", text).strip()


def parse_clock_time(text: Optional[str]) -> Optional[int]:
    """
    First clock time in normalized text, as minutes after midnight.

    A number only counts as a time with "am"/"pm", a ":mm" part or a
    leading "at". Without am/pm, hours 1-7 are read as afternoon.
    """
    if not text:
        return None
    for match in CLOCK_TIME_PATTERN.finditer(text):
        at, hour_text, minute_text, meridiem = match.groups()
        if not (at or minute_text or meridiem):
            continue

        hour = int(hour_text)
        minute = int(minute_text) if minute_text else 0
        if minute > 59:
            continue
        if meridiem:
            if not 1 <= hour <= 12:
                continue
            hour = hour % 12 + (12 if meridiem == "pm" else 0)
        elif hour > 23:
            continue
        elif 0 < hour < AFTERNOON_BEFORE_HOUR:
            hour += 12
        return hour * 60 + minute
    return None


def resolve_day(day_word: Optional[str], today: date) -> Optional[date]:
    """
    Resolve a day word to a calendar date.

    Args:
        day_word: "today", "tomorrow", a weekday name, "m/d" or "YYYY-MM-DD"
        today: Current date in the booking zone

    Returns:
        Resolved date, or None if the word can't be read. Weekday names
        resolve to the next such date strictly after today; m/d resolves to
        this year, or next year if already past.
    """
    if not day_word:
        return None
    word = day_word.strip().lower()

    if word in ("today", "tonight"):
        return today
    if word in ("tomorrow", "tmrw", "tmr"):
        return today + timedelta(days=1)

    for index, prefix in enumerate(WEEKDAY_PREFIXES):
        if word.startswith(prefix):
            target = index
            for add in range(1, MAX_WEEKDAY_LOOKAHEAD + 1):
                candidate = today + timedelta(days=add)
                if (candidate.weekday() + 1) % 7 == target:
                    return candidate
            return None

    try:
        if "-" in word:
            return date.fromisoformat(word)
        if "/" in word:
            month, day = (int(part) for part in word.split("/", 1))
            candidate = date(today.year, month, day)
            if candidate < today:
                candidate = date(today.year + 1, month, day)
            return candidate
    except ValueError:
        logger.debug(f"Unreadable date '{day_word}'")
    return None


class EntityExtractor:
    """Pulls emails, dates and day parts out of free text."""

    def extract(self, message: Optional[str], today: date) -> ExtractedEntities:
        """
        Extract entities from a visitor message.

        Args:
            message: Visitor's message
            today: Current date in the booking zone

        Returns:
            ExtractedEntities with any found values
        """
        if not message or not message.strip():
            return ExtractedEntities()

        email = extract_email(message)
        text = normalize(strip_email(message))
        day_word = detect_day_word(text)

        result = ExtractedEntities(
            email=email,
            email_attempt=email is None and "@" in message,
            date=resolve_day(day_word, today),
            day_word=day_word,
            day_part=detect_day_part(text),
            time_minutes=parse_clock_time(text),
        )

        logger.debug(
            f"Extracted entities: date={result.date}, time={result.time_minutes}, day_part={result.day_part}, "
            f"email={'yes' if result.email else 'no'}"
        )
        return result


# Singleton instance
_extractor: Optional[EntityExtractor] = None


def get_entity_extractor() -> EntityExtractor:
    """Get singleton entity extractor."""
    global _extractor
    if _extractor is None:
        _extractor = EntityExtractor()
    return _extractor


def extract_entities(message: Optional[str], today: date) -> ExtractedEntities:
    """Convenience function to extract entities."""
    return get_entity_extractor().extract(message, today)
