"""
Booking Coordinator.

Turns a picked slot plus an email into exactly one calendar event:

1. Re-validate the selection (end after start, valid email, still in the
   future, and one of the slots the availability rules actually produce)
2. Idempotency lookup: an event at this start with this attendee already exists
3. Fresh busy check for the slot interval
4. Create the event (with video link and invite)
5. Best-effort lead upsert and notification, concurrently, under a timeout

Side-effect failures after the write are logged and never undo or fail the
booking.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.core.errors import ExternalCallError, RaceError, ValidationError
from app.core.intelligence.entities.extractor import is_valid_email
from app.core.scheduling.clock import TimeZoneClock, to_iso_z
from app.core.scheduling.ports import (
    CalendarReadPort,
    CalendarWritePort,
    CreatedEvent,
    LeadStorePort,
    NotifyPort,
)
from app.core.scheduling.slots import SlotGenerator, overlaps

logger = logging.getLogger(__name__)


LEAD_STATUS_BOOKED = "Booked"


@dataclass
class BookingOutcome:
    """Result of a successful booking."""

    event_id: str
    start: datetime
    end: datetime
    email: str
    when: str
    join_link: Optional[str] = None
    html_link: Optional[str] = None
    already_booked: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "event_id": self.event_id,
            "start": to_iso_z(self.start),
            "end": to_iso_z(self.end),
            "email": self.email,
            "when": self.when,
            "meet_link": self.join_link,
            "html_link": self.html_link,
            "already_booked": self.already_booked,
        }


class BookingCoordinator:
    """Books one slot per (email, start), with best-effort side effects."""

    def __init__(
        self,
        clock: TimeZoneClock,
        calendar: CalendarWritePort,
        busy_source: Optional[CalendarReadPort] = None,
        lead_store: Optional[LeadStorePort] = None,
        notifier: Optional[NotifyPort] = None,
        slot_source: Optional[SlotGenerator] = None,
        calendar_id: str = "primary",
        summary: str = "Intro Call",
        description: Optional[str] = None,
        side_effect_timeout: float = 5.0,
    ):
        self._clock = clock
        self._calendar = calendar
        self._busy_source = busy_source
        self._lead_store = lead_store
        self._notifier = notifier
        self._slot_source = slot_source
        self._calendar_id = calendar_id
        self._summary = summary
        self._description = description
        self._side_effect_timeout = side_effect_timeout

    async def book(
        self,
        start: datetime,
        end: datetime,
        email: str,
        session_id: Optional[str] = None,
    ) -> BookingOutcome:
        """
        Book [start, end) for email.

        Args:
            start: Slot start (UTC)
            end: Slot end (UTC)
            email: Attendee email
            session_id: Conversation id, for logging

        Returns:
            BookingOutcome (already_booked=True if the event existed)

        Raises:
            ValidationError: Bad selection or email, slot already started, or not a
                slot the rules offer
            RaceError: Slot became busy since it was offered
            ExternalCallError: Calendar write failed (AuthError / ConflictOrQuotaError subclasses)
        """
        email = self._validate(start, end, email)

        existing = await self._find_existing(start, end, email)
        if existing is not None:
            logger.info(
                f"Booking for {to_iso_z(start)} already exists (event={existing.event_id}, "
                f"session={session_id})"
            )
            return self._outcome(existing, start, end, email, already_booked=True)

        await self._ensure_free(start, end)

        created = await self._calendar.create_event(
            calendar_id=self._calendar_id,
            start=start,
            end=end,
            attendee_email=email,
            summary=self._summary,
            description=self._description,
        )
        outcome = self._outcome(created, start, end, email, already_booked=created.already_existed)
        logger.info(
            f"Booked {to_iso_z(start)} for session {session_id} (event={created.event_id}, "
            f"existing={created.already_existed})"
        )

        if not outcome.already_booked:
            await self._run_side_effects(outcome)
        return outcome

    def _validate(self, start: datetime, end: datetime, email: str) -> str:
        if end <= start:
            raise ValidationError("The selected end time is before the start.", field="slot")
        if not is_valid_email(email):
            raise ValidationError("That email doesn't look valid.", field="email")
        if start <= self._clock.now():
            raise ValidationError("That time has already passed.", field="start")
        if self._slot_source is not None and not self._is_offered(start, end):
            raise ValidationError("That isn't one of our available times.", field="slot")
        return email.strip().lower()

    def _is_offered(self, start: datetime, end: datetime) -> bool:
        # Only exact grid slots from the rules may be written
        day = self._clock.instant_to_wall(start).as_date()
        return any(slot.start == start and slot.end == end for slot in self._slot_source.iter_day(day))

    async def _find_existing(self, start: datetime, end: datetime, email: str) -> Optional[CreatedEvent]:
        # A failed lookup is not fatal; the deterministic event id still guards the write
        try:
            return await self._calendar.find_event(self._calendar_id, start, end, email)
        except ExternalCallError as e:
            logger.warning(f"Idempotency lookup failed, proceeding with write: {e}")
            return None

    async def _ensure_free(self, start: datetime, end: datetime) -> None:
        if self._busy_source is None:
            return
        try:
            intervals = await self._busy_source.free_busy(self._calendar_id, start, end)
        except ExternalCallError as e:
            # The calendar write remains the arbiter
            logger.warning(f"Pre-booking busy check failed, proceeding with write: {e}")
            return
        if any(overlaps(start, end, b_start, b_end) for b_start, b_end in intervals):
            raise RaceError("That time is no longer available.")

    def _outcome(
        self,
        event: CreatedEvent,
        start: datetime,
        end: datetime,
        email: str,
        already_booked: bool,
    ) -> BookingOutcome:
        return BookingOutcome(
            event_id=event.event_id,
            start=start,
            end=end,
            email=email,
            when=self._clock.label(start),
            join_link=event.join_link,
            html_link=event.html_link,
            already_booked=already_booked,
        )

    async def _run_side_effects(self, outcome: BookingOutcome) -> None:
        """Lead upsert and notification, concurrently and bounded. Never raises."""
        calls = []
        if self._lead_store is not None:
            calls.append(("lead upsert", self._lead_store.upsert_lead(
                outcome.email, LEAD_STATUS_BOOKED, outcome.start
            )))
        if self._notifier is not None:
            calls.append(("notification", self._notifier.notify_booking(
                outcome.email, f"{outcome.when} ({self._clock.zone_id})", outcome.join_link
            )))
        if not calls:
            return

        names = [name for name, _ in calls]
        try:
            results = await asyncio.wait_for(
                asyncio.gather(*(coro for _, coro in calls), return_exceptions=True),
                timeout=self._side_effect_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Post-booking side effects timed out after {self._side_effect_timeout}s: {names}"
            )
            return

        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.warning(f"Post-booking {name} failed for event {outcome.event_id}: {result}")
