"""
Slot Generation

Turns the weekly availability template into concrete, timezone-correct
slots and marks the ones the live calendar reports as busy.

Generation is two-phase:
1. `iter_day()` lazily walks each availability window of one day, stepping
   by the slot length and deduplicating by start instant.
2. `generate()` drops anything inside the lead time, stops at `max_count`,
   then runs one free/busy query per day and flags overlapping slots.

Busy slots are kept (flagged, shown disabled) rather than removed.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterator, Optional

from app.core.errors import ExternalCallError
from app.core.intelligence.intent.types import DayPart
from app.core.scheduling.clock import TimeZoneClock, WallTime, to_iso_z, weekday_index
from app.core.scheduling.ports import CalendarReadPort
from app.core.scheduling.rules import AvailabilityRules

logger = logging.getLogger(__name__)


BUSY_FALLBACK_UNAVAILABLE = "unavailable"
BUSY_FALLBACK_ASSUME_FREE = "assume_free"

# Wall-clock ranges by slot start, [start_minute, end_minute)
DAY_PART_WINDOWS: dict[DayPart, tuple[int, int]] = {
    DayPart.MORNING: (8 * 60, 12 * 60),
    DayPart.AFTERNOON: (12 * 60, 17 * 60),
    DayPart.EVENING: (17 * 60, 21 * 60),
}


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval overlap: touching endpoints do not overlap."""
    return max(a_start, b_start) < min(a_end, b_end)


@dataclass
class Slot:
    """A bookable interval offered to the user."""

    start: datetime
    end: datetime
    label: str
    busy: bool = False

    @property
    def disabled(self) -> bool:
        return self.busy

    def to_dict(self) -> dict:
        """Convert to the wire shape."""
        return {
            "start": to_iso_z(self.start),
            "end": to_iso_z(self.end),
            "label": self.label,
            "busy": self.busy,
            "disabled": self.busy,
        }


@dataclass
class BusyLookup:
    """Busy intervals for a range, and whether the lookup failed."""

    intervals: list[tuple[datetime, datetime]] = field(default_factory=list)
    degraded: bool = False


@dataclass
class SlotBatch:
    """Slots produced by one generate() call."""

    slots: list[Slot] = field(default_factory=list)
    degraded_days: list[date] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_days)

    @property
    def enabled(self) -> list[Slot]:
        return [slot for slot in self.slots if not slot.busy]

    def __iter__(self) -> Iterator[Slot]:
        return iter(self.slots)

    def __len__(self) -> int:
        return len(self.slots)

    def __getitem__(self, index):
        return self.slots[index]


class BusyTimeOracle:
    """
    Asks the calendar which intervals are already taken.

    When the calendar call fails, `fallback` decides what the range means:
    "unavailable" reports the whole range busy, "assume_free" reports it
    free. Either way the lookup is flagged degraded and logged.
    """

    def __init__(
        self,
        calendar: Optional[CalendarReadPort],
        calendar_id: str = "primary",
        fallback: str = BUSY_FALLBACK_UNAVAILABLE,
    ):
        if fallback not in (BUSY_FALLBACK_UNAVAILABLE, BUSY_FALLBACK_ASSUME_FREE):
            raise ValueError(f"Unknown busy fallback policy: {fallback}")
        self._calendar = calendar
        self._calendar_id = calendar_id
        self._fallback = fallback

    async def busy_intervals(self, start: datetime, end: datetime) -> BusyLookup:
        if self._calendar is None:
            return BusyLookup()

        try:
            intervals = await self._calendar.free_busy(self._calendar_id, start, end)
        except ExternalCallError as e:
            logger.warning(
                f"Free/busy lookup failed for {to_iso_z(start)}..{to_iso_z(end)} "
                f"(policy={self._fallback}): {e}"
            )
            if self._fallback == BUSY_FALLBACK_UNAVAILABLE:
                return BusyLookup(intervals=[(start, end)], degraded=True)
            return BusyLookup(degraded=True)

        return BusyLookup(intervals=list(intervals))

    async def is_busy(self, start: datetime, end: datetime) -> bool:
        """Fresh check for a single interval. Calendar errors propagate."""
        if self._calendar is None:
            return False
        intervals = await self._calendar.free_busy(self._calendar_id, start, end)
        return any(overlaps(start, end, b_start, b_end) for b_start, b_end in intervals)


class SlotGenerator:
    """Generates candidate slots from rules, clock and calendar."""

    def __init__(
        self,
        clock: TimeZoneClock,
        rules: AvailabilityRules,
        oracle: Optional[BusyTimeOracle] = None,
    ):
        self._clock = clock
        self._rules = rules
        self._oracle = oracle or BusyTimeOracle(None)

    @property
    def clock(self) -> TimeZoneClock:
        return self._clock

    def iter_day(self, day: date, slot_minutes: Optional[int] = None) -> Iterator[Slot]:
        """
        Yield the day's candidate slots in start order.

        Overlapping windows can produce the same start instant twice, as can
        a wall time inside a DST gap; only the first is yielded.
        """
        slot_minutes = slot_minutes or self._rules.slot_minutes
        length = timedelta(minutes=slot_minutes)

        starts: set[int] = set()
        for window_start, window_end in self._rules.windows_for(weekday_index(day)):
            minute = window_start
            while minute + slot_minutes <= window_end:
                starts.add(minute)
                minute += slot_minutes

        seen: set[datetime] = set()
        for minute in sorted(starts):
            start = self._clock.wall_to_instant(WallTime.at(day, minute, self._clock.zone_id))
            if start in seen:
                continue
            seen.add(start)
            yield Slot(start=start, end=start + length, label=self._clock.label(start))

    async def generate(
        self,
        from_date: date,
        horizon_days: int = 7,
        slot_minutes: Optional[int] = None,
        lead_time_hours: float = 0,
        max_count: int = 40,
    ) -> SlotBatch:
        """
        Generate slots from `from_date` forward.

        Args:
            from_date: First calendar day (in the configured zone)
            horizon_days: Number of days to walk
            slot_minutes: Slot length, defaults to the rules' granularity
            lead_time_hours: Slots starting at or before now + lead are skipped
            max_count: Stop after this many slots

        Returns:
            SlotBatch ordered by start, busy slots flagged
        """
        cutoff = self._clock.now() + timedelta(hours=lead_time_hours)
        batch = SlotBatch()

        for offset in range(max(horizon_days, 0)):
            if len(batch.slots) >= max_count:
                break

            day = from_date + timedelta(days=offset)
            day_slots: list[Slot] = []
            for slot in self.iter_day(day, slot_minutes):
                if slot.start <= cutoff:
                    continue
                day_slots.append(slot)
                if len(batch.slots) + len(day_slots) >= max_count:
                    break

            if not day_slots:
                continue

            if await self._mark_busy(day, day_slots):
                batch.degraded_days.append(day)
            batch.slots.extend(day_slots)

        return batch

    async def _mark_busy(self, day: date, day_slots: list[Slot]) -> bool:
        """Flag busy slots with one lookup for the day. Returns True if degraded."""
        day_start, day_end = self._clock.day_bounds(day)
        lookup = await self._oracle.busy_intervals(day_start, day_end)
        for slot in day_slots:
            slot.busy = any(
                overlaps(slot.start, slot.end, b_start, b_end) for b_start, b_end in lookup.intervals
            )
        return lookup.degraded


def filter_by_day_part(
    slots: list[Slot], day_part: Optional[DayPart], clock: TimeZoneClock
) -> list[Slot]:
    """Keep slots whose start wall time falls in the day part."""
    if day_part is None:
        return list(slots)
    low, high = DAY_PART_WINDOWS[day_part]
    return [slot for slot in slots if low <= clock.instant_to_wall(slot.start).minute_of_day < high]
