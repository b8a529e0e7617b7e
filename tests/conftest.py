"""Shared fixtures: a pinned clock and an in-memory calendar."""

from datetime import date, datetime, timezone
from typing import Optional

import pytest

from app.core.errors import ExternalCallError
from app.core.scheduling.clock import TimeZoneClock
from app.core.scheduling.ports import CalendarReadPort, CalendarWritePort, CreatedEvent
from app.core.scheduling.rules import AvailabilityRules, AvailabilityWindow
from app.core.scheduling.slots import overlaps

ZONE = "America/New_York"

# Thursday 2025-09-04, 08:00 EDT
FIXED_NOW = datetime(2025, 9, 4, 12, 0, tzinfo=timezone.utc)
TODAY = date(2025, 9, 4)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FakeCalendar(CalendarReadPort, CalendarWritePort):
    """In-memory calendar recording every call."""

    def __init__(self, busy: Optional[list] = None, fail_free_busy: bool = False):
        self.busy = list(busy or [])
        self.fail_free_busy = fail_free_busy
        self.free_busy_calls: list[tuple[datetime, datetime]] = []
        self.events: dict[tuple[str, datetime], CreatedEvent] = {}
        self.create_calls = 0
        self.create_error: Optional[Exception] = None

    async def free_busy(self, calendar_id, start, end):
        self.free_busy_calls.append((start, end))
        if self.fail_free_busy:
            raise ExternalCallError("freeBusy unavailable", 503)
        return [(s, e) for s, e in self.busy if overlaps(start, end, s, e)]

    async def create_event(self, calendar_id, start, end, attendee_email, summary, description=None):
        self.create_calls += 1
        if self.create_error is not None:
            raise self.create_error
        event = CreatedEvent(
            event_id=f"evt{len(self.events) + 1}",
            join_link="https://meet.google.com/abc-defg-hij",
            html_link="https://calendar.google.com/event?eid=1",
        )
        self.events[(attendee_email, start)] = event
        self.busy.append((start, end))
        return event

    async def find_event(self, calendar_id, start, end, attendee_email):
        event = self.events.get((attendee_email, start))
        if event is None:
            return None
        return CreatedEvent(event.event_id, event.join_link, event.html_link, already_existed=True)


@pytest.fixture
def clock():
    """Clock pinned to Thursday 2025-09-04 08:00 in New York."""
    return TimeZoneClock(ZONE, now_fn=lambda: FIXED_NOW)


@pytest.fixture
def weekday_rules():
    """Mon-Fri 09:00-17:00, 30-minute slots."""
    return AvailabilityRules(
        [AvailabilityWindow(weekday, 9 * 60, 17 * 60) for weekday in range(1, 6)],
        slot_minutes=30,
    )


@pytest.fixture
def calendar():
    return FakeCalendar()
