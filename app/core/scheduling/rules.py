"""
Availability Rules

Weekly template of bookable windows, in minutes since local midnight in the
configured zone. Two JSON shapes are accepted:

    {"mon": [["09:00", "17:00"]], "tue": [...], "slotMinutes": 30}
    {"hours": {"mon": [["09:00", "12:00"], ["13:00", "17:00"]]}, "slotIntervalMins": 30}

Anything missing, unparseable or empty falls back to Mon-Fri 09:00-17:00.
The fallback is logged at WARNING and exposed via `is_fallback`.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

logger = logging.getLogger(__name__)


# Sunday-based, matching TimeZoneClock.weekday_of
DAY_KEYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")

DEFAULT_SLOT_MINUTES = 30
MINUTES_PER_DAY = 24 * 60


def parse_hhmm(value: Any) -> int:
    """Parse "HH:MM" into minutes since midnight. "24:00" is allowed as an end."""
    if not isinstance(value, str) or ":" not in value:
        raise ValueError(f"Expected HH:MM, got {value!r}")
    hours, minutes = value.strip().split(":", 1)
    total = int(hours) * 60 + int(minutes)
    if not 0 <= int(minutes) < 60 or not 0 <= total <= MINUTES_PER_DAY:
        raise ValueError(f"Time out of range: {value!r}")
    return total


@dataclass(frozen=True)
class AvailabilityWindow:
    """One bookable range on one weekday (0=Sunday)."""

    weekday: int
    start_minute: int
    end_minute: int

    def __post_init__(self):
        if not 0 <= self.weekday <= 6:
            raise ValueError(f"weekday out of range: {self.weekday}")
        if not 0 <= self.start_minute < self.end_minute <= MINUTES_PER_DAY:
            raise ValueError(
                f"invalid window {self.start_minute}-{self.end_minute} on {DAY_KEYS[self.weekday]}"
            )


class AvailabilityRules:
    """Weekly availability template plus slot granularity."""

    def __init__(
        self,
        windows: Iterable[AvailabilityWindow],
        slot_minutes: int = DEFAULT_SLOT_MINUTES,
        is_fallback: bool = False,
    ):
        if slot_minutes <= 0:
            raise ValueError("slot_minutes must be positive")
        self.slot_minutes = slot_minutes
        self.is_fallback = is_fallback
        self._by_weekday: dict[int, list[tuple[int, int]]] = {}
        for window in windows:
            self._by_weekday.setdefault(window.weekday, []).append(
                (window.start_minute, window.end_minute)
            )
        for ranges in self._by_weekday.values():
            ranges.sort()

    def windows_for(self, weekday: int) -> list[tuple[int, int]]:
        """Windows for a weekday (0=Sunday), sorted by start. Empty if closed."""
        return list(self._by_weekday.get(weekday, []))

    @property
    def open_weekdays(self) -> set[int]:
        return set(self._by_weekday)

    def to_dict(self) -> dict:
        """Serialize back to the flat JSON shape."""
        data: dict[str, Any] = {}
        for weekday, ranges in sorted(self._by_weekday.items()):
            data[DAY_KEYS[weekday]] = [
                [f"{s // 60:02d}:{s % 60:02d}", f"{e // 60:02d}:{e % 60:02d}"] for s, e in ranges
            ]
        data["slotMinutes"] = self.slot_minutes
        return data

    @classmethod
    def default(cls, reason: str = "no rules configured") -> "AvailabilityRules":
        """Mon-Fri 09:00-17:00, 30-minute slots."""
        logger.warning(f"Using default availability rules (Mon-Fri 09:00-17:00): {reason}")
        windows = [AvailabilityWindow(weekday, 9 * 60, 17 * 60) for weekday in range(1, 6)]
        return cls(windows, DEFAULT_SLOT_MINUTES, is_fallback=True)

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "AvailabilityRules":
        """Parse rules from a JSON string, falling back to defaults on any problem."""
        if not raw or not raw.strip():
            return cls.default("BOOKING_RULES_JSON is empty")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            return cls.default(f"BOOKING_RULES_JSON is not valid JSON ({e.msg})")
        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: Any) -> "AvailabilityRules":
        """Parse rules from an already-decoded mapping."""
        if not isinstance(data, dict):
            return cls.default("rules must be a JSON object")

        day_map = data.get("hours") if isinstance(data.get("hours"), dict) else data
        slot_minutes = _parse_slot_minutes(
            data.get("slotMinutes", data.get("slotIntervalMins", DEFAULT_SLOT_MINUTES))
        )

        windows: list[AvailabilityWindow] = []
        for weekday, key in enumerate(DAY_KEYS):
            ranges = day_map.get(key)
            if not isinstance(ranges, list):
                continue
            for entry in ranges:
                try:
                    start, end = entry
                    windows.append(AvailabilityWindow(weekday, parse_hhmm(start), parse_hhmm(end)))
                except (TypeError, ValueError) as e:
                    logger.warning(f"Ignoring availability window {entry!r} on {key}: {e}")

        if not windows:
            return cls.default("no valid windows in rules")

        logger.debug(f"Loaded {len(windows)} availability windows, {slot_minutes}-minute slots")
        return cls(windows, slot_minutes)


def _parse_slot_minutes(value: Any) -> int:
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid slot length {value!r}, using {DEFAULT_SLOT_MINUTES}")
        return DEFAULT_SLOT_MINUTES
    if not 5 <= minutes <= MINUTES_PER_DAY:
        logger.warning(f"Slot length {minutes} out of range, using {DEFAULT_SLOT_MINUTES}")
        return DEFAULT_SLOT_MINUTES
    return minutes
