"""Tests for slot generation and busy marking."""

from datetime import date, datetime, timedelta, timezone

import pytest

from app.core.errors import ExternalCallError
from app.core.intelligence.intent.types import DayPart
from app.core.scheduling.clock import TimeZoneClock
from app.core.scheduling.rules import AvailabilityRules, AvailabilityWindow
from app.core.scheduling.slots import (
    BUSY_FALLBACK_ASSUME_FREE,
    BUSY_FALLBACK_UNAVAILABLE,
    BusyTimeOracle,
    SlotGenerator,
    filter_by_day_part,
    overlaps,
)
from tests.conftest import TODAY, ZONE, FakeCalendar, utc

THURSDAY = 4


def rules_for(weekday: int, start: str, end: str, slot_minutes: int = 30) -> AvailabilityRules:
    def minutes(text):
        hours, mins = text.split(":")
        return int(hours) * 60 + int(mins)

    return AvailabilityRules([AvailabilityWindow(weekday, minutes(start), minutes(end))], slot_minutes)


def generator_for(rules, calendar=None, now=None, fallback=BUSY_FALLBACK_UNAVAILABLE):
    now = now or utc(2025, 9, 4, 12, 0)
    clock = TimeZoneClock(ZONE, now_fn=lambda: now)
    return SlotGenerator(clock, rules, BusyTimeOracle(calendar, "primary", fallback))


class TestOverlaps:
    """Half-open interval overlap."""

    def test_touching_intervals_do_not_overlap(self):
        assert not overlaps(utc(2025, 9, 4, 14), utc(2025, 9, 4, 15), utc(2025, 9, 4, 15), utc(2025, 9, 4, 16))

    def test_contained_interval_overlaps(self):
        assert overlaps(
            utc(2025, 9, 4, 14), utc(2025, 9, 4, 15),
            utc(2025, 9, 4, 14, 15), utc(2025, 9, 4, 14, 45),
        )


class TestSlotGenerator:
    """Test slot generation against rules, clock and calendar."""

    @pytest.mark.asyncio
    async def test_busy_interval_marks_both_overlapping_slots(self):
        """10:00-11:00 window, busy 10:15-10:45: both 30-minute slots are busy."""
        calendar = FakeCalendar(busy=[(utc(2025, 9, 4, 14, 15), utc(2025, 9, 4, 14, 45))])
        generator = generator_for(rules_for(THURSDAY, "10:00", "11:00"), calendar)

        batch = await generator.generate(TODAY, horizon_days=1)

        assert [slot.start for slot in batch] == [utc(2025, 9, 4, 14, 0), utc(2025, 9, 4, 14, 30)]
        assert all(slot.busy for slot in batch)
        assert all(slot.disabled for slot in batch)
        assert batch.enabled == []

    @pytest.mark.asyncio
    async def test_busy_touching_slot_end_leaves_slot_free(self):
        calendar = FakeCalendar(busy=[(utc(2025, 9, 4, 14, 30), utc(2025, 9, 4, 15, 0))])
        generator = generator_for(rules_for(THURSDAY, "10:00", "11:00"), calendar)

        batch = await generator.generate(TODAY, horizon_days=1)

        assert [slot.busy for slot in batch] == [False, True]

    @pytest.mark.asyncio
    async def test_slots_inside_lead_time_are_excluded(self):
        """Now 09:30, lead 1h: slots starting at or before 10:30 are dropped."""
        generator = generator_for(
            rules_for(THURSDAY, "09:00", "12:00"), now=utc(2025, 9, 4, 13, 30)
        )

        batch = await generator.generate(TODAY, horizon_days=1, lead_time_hours=1)

        cutoff = utc(2025, 9, 4, 14, 30)
        assert [slot.label for slot in batch] == ["Thu, Sep 4, 11:00 AM", "Thu, Sep 4, 11:30 AM"]
        assert all(slot.start > cutoff for slot in batch)

    @pytest.mark.asyncio
    async def test_closed_weekdays_produce_nothing(self, clock):
        generator = SlotGenerator(clock, rules_for(THURSDAY, "09:00", "10:00"))

        batch = await generator.generate(TODAY, horizon_days=7)

        assert len(batch) == 2
        assert all(clock.weekday_of(slot.start) == THURSDAY for slot in batch)

    @pytest.mark.asyncio
    async def test_slots_lie_inside_windows_and_are_ordered(self, clock, weekday_rules):
        generator = SlotGenerator(clock, weekday_rules)

        batch = await generator.generate(TODAY, horizon_days=7, max_count=500)

        starts = [slot.start for slot in batch]
        assert starts == sorted(starts)
        for slot in batch:
            wall = clock.instant_to_wall(slot.start)
            assert 540 <= wall.minute_of_day and wall.minute_of_day + 30 <= 1020
            assert slot.end - slot.start == timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_max_count_truncates(self, clock, weekday_rules):
        generator = SlotGenerator(clock, weekday_rules)

        batch = await generator.generate(TODAY, horizon_days=7, max_count=5)

        assert len(batch) == 5

    @pytest.mark.asyncio
    async def test_one_free_busy_query_per_day(self, clock, weekday_rules):
        calendar = FakeCalendar()
        generator = SlotGenerator(clock, weekday_rules, BusyTimeOracle(calendar))

        await generator.generate(TODAY, horizon_days=7, max_count=500)

        # Thu, Fri, Mon, Tue, Wed
        assert len(calendar.free_busy_calls) == 5
        start, end = calendar.free_busy_calls[0]
        assert (start, end) == clock.day_bounds(TODAY)

    @pytest.mark.asyncio
    async def test_slot_minutes_override(self, clock):
        generator = SlotGenerator(clock, rules_for(THURSDAY, "09:00", "11:00"))

        batch = await generator.generate(TODAY, horizon_days=1, slot_minutes=60)

        assert [slot.label for slot in batch] == ["Thu, Sep 4, 9:00 AM", "Thu, Sep 4, 10:00 AM"]


class TestDaylightSaving:
    """Slots across DST transitions."""

    @pytest.mark.asyncio
    async def test_spring_forward_gap_deduplicated(self):
        """Sun 2025-03-09 01:00-04:00: 02:xx resolves onto 03:xx and is yielded once."""
        generator = generator_for(
            rules_for(0, "01:00", "04:00"), now=utc(2025, 3, 1, 12, 0)
        )

        batch = await generator.generate(date(2025, 3, 9), horizon_days=1)

        assert [slot.start for slot in batch] == [
            utc(2025, 3, 9, 6, 0),
            utc(2025, 3, 9, 6, 30),
            utc(2025, 3, 9, 7, 0),
            utc(2025, 3, 9, 7, 30),
        ]
        assert [slot.label for slot in batch][-2:] == ["Sun, Mar 9, 3:00 AM", "Sun, Mar 9, 3:30 AM"]

    @pytest.mark.asyncio
    async def test_fall_back_repeated_hour_offered_once(self):
        generator = generator_for(
            rules_for(0, "00:00", "03:00", slot_minutes=60), now=utc(2025, 10, 25, 12, 0)
        )

        batch = await generator.generate(date(2025, 11, 2), horizon_days=1)

        assert [slot.start for slot in batch] == [
            utc(2025, 11, 2, 4, 0),
            utc(2025, 11, 2, 5, 0),
            utc(2025, 11, 2, 7, 0),
        ]

    def test_overlapping_windows_deduplicated(self, clock):
        rules = AvailabilityRules(
            [AvailabilityWindow(THURSDAY, 540, 600), AvailabilityWindow(THURSDAY, 570, 660)],
            slot_minutes=30,
        )
        generator = SlotGenerator(clock, rules)

        labels = [slot.label for slot in generator.iter_day(TODAY)]

        assert labels == [
            "Thu, Sep 4, 9:00 AM",
            "Thu, Sep 4, 9:30 AM",
            "Thu, Sep 4, 10:00 AM",
            "Thu, Sep 4, 10:30 AM",
        ]


class TestBusyFallback:
    """Free/busy failure policy."""

    @pytest.mark.asyncio
    async def test_unavailable_policy_marks_day_busy(self):
        calendar = FakeCalendar(fail_free_busy=True)
        generator = generator_for(rules_for(THURSDAY, "10:00", "11:00"), calendar)

        batch = await generator.generate(TODAY, horizon_days=1)

        assert len(batch) == 2
        assert all(slot.busy for slot in batch)
        assert batch.degraded
        assert batch.degraded_days == [TODAY]

    @pytest.mark.asyncio
    async def test_assume_free_policy_offers_slots(self):
        calendar = FakeCalendar(fail_free_busy=True)
        generator = generator_for(
            rules_for(THURSDAY, "10:00", "11:00"), calendar, fallback=BUSY_FALLBACK_ASSUME_FREE
        )

        batch = await generator.generate(TODAY, horizon_days=1)

        assert not any(slot.busy for slot in batch)
        assert batch.degraded

    @pytest.mark.asyncio
    async def test_is_busy_propagates_errors(self):
        oracle = BusyTimeOracle(FakeCalendar(fail_free_busy=True))

        with pytest.raises(ExternalCallError):
            await oracle.is_busy(utc(2025, 9, 4, 14), utc(2025, 9, 4, 14, 30))

    @pytest.mark.asyncio
    async def test_is_busy(self):
        oracle = BusyTimeOracle(FakeCalendar(busy=[(utc(2025, 9, 4, 14), utc(2025, 9, 4, 15))]))

        assert await oracle.is_busy(utc(2025, 9, 4, 14, 30), utc(2025, 9, 4, 15)) is True
        assert await oracle.is_busy(utc(2025, 9, 4, 15), utc(2025, 9, 4, 15, 30)) is False

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValueError):
            BusyTimeOracle(None, fallback="maybe")


class TestDayPartFilter:
    """Morning / afternoon / evening by slot start."""

    @pytest.fixture
    def slots(self, clock):
        generator = SlotGenerator(clock, rules_for(THURSDAY, "07:00", "22:00", slot_minutes=60))
        return list(generator.iter_day(TODAY))

    def _hours(self, slots, clock):
        return [clock.instant_to_wall(slot.start).hour for slot in slots]

    def test_morning(self, slots, clock):
        assert self._hours(filter_by_day_part(slots, DayPart.MORNING, clock), clock) == [8, 9, 10, 11]

    def test_afternoon(self, slots, clock):
        assert self._hours(filter_by_day_part(slots, DayPart.AFTERNOON, clock), clock) == [12, 13, 14, 15, 16]

    def test_evening(self, slots, clock):
        assert self._hours(filter_by_day_part(slots, DayPart.EVENING, clock), clock) == [17, 18, 19, 20]

    def test_no_day_part_keeps_all(self, slots, clock):
        assert len(filter_by_day_part(slots, None, clock)) == 15
