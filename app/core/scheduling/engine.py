"""
Scheduling Engine - Main Orchestrator.

Coordinates all components to process one conversational turn:

    payload -> session -> entities + intent -> flow action -> reply

Exactly one reply variant comes back per turn. Collaborator failures are
mapped to recoverable error replies; the conversation never ends on an
error and never falls back to the greeting.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from app.config import BookingConfig, Settings, build_booking_config, get_settings
from app.core.errors import (
    AuthError,
    ConflictOrQuotaError,
    ExternalCallError,
    NotConnectedError,
    RaceError,
    ValidationError,
)
from app.core.intelligence.entities.extractor import EntityExtractor, get_entity_extractor, strip_email
from app.core.intelligence.intent.classifier import IntentClassifier, get_intent_classifier
from app.core.intelligence.intent.types import DayPart, Intent, IntentResult
from app.core.intelligence.session.models import ConversationSession, PendingSelection, TurnInput
from app.core.intelligence.session.state import ConversationState
from app.core.scheduling.booking import BookingCoordinator
from app.core.scheduling.clock import TimeZoneClock, WallTime
from app.core.scheduling.flow import (
    ACTION_ASK_DAY,
    ACTION_BOOK,
    ACTION_BOOK_EXACT,
    ACTION_CAPABILITY,
    ACTION_EMAIL_ACK,
    ACTION_GREET,
    ACTION_INVALID_EMAIL,
    ACTION_INVALID_PICK,
    ACTION_NEED_EMAIL,
    ACTION_PAY,
    ACTION_PRICING,
    ACTION_SHOW_SLOTS,
    ConversationFlow,
    FlowAction,
    get_conversation_flow,
)
from app.core.scheduling.replies import (
    ActionReply,
    BookedReply,
    ErrorReply,
    NeedEmailReply,
    Reply,
    SlotsReply,
    TextReply,
)
from app.core.scheduling.response import Copy, ResponseGenerator
from app.core.scheduling.slots import (
    BusyTimeOracle,
    Slot,
    SlotBatch,
    SlotGenerator,
    filter_by_day_part,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass
class EngineResponse:
    """Response from scheduling engine."""

    reply: Reply
    session: ConversationSession
    intent: Optional[Intent] = None
    processing_time_ms: Optional[float] = None

    @property
    def state(self) -> ConversationState:
        return self.session.state

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        result = {
            "reply": self.reply.to_dict(),
            "state": self.state.value,
            "session": self.session.to_dict(),
        }
        if self.intent:
            result["intent"] = self.intent.value
        if self.processing_time_ms is not None:
            result["processing_time_ms"] = self.processing_time_ms
        return result


class SchedulingEngine:
    """
    Main orchestrator for the scheduling assistant.

    Coordinates:
    - Intent classification and entity extraction
    - Conversation flow
    - Slot generation against the live calendar
    - Booking
    - Response text (and optional tone smoothing)
    """

    def __init__(
        self,
        config: BookingConfig,
        generator: SlotGenerator,
        responses: ResponseGenerator,
        coordinator: Optional[BookingCoordinator] = None,
        classifier: Optional[IntentClassifier] = None,
        extractor: Optional[EntityExtractor] = None,
        flow: Optional[ConversationFlow] = None,
    ):
        """Initialize engine.

        Args:
            config: Booking configuration
            generator: Slot generator
            responses: Response generator
            coordinator: Booking coordinator (None when no calendar is configured)
            classifier: Intent classifier (defaults to singleton)
            extractor: Entity extractor (defaults to singleton)
            flow: Conversation flow (defaults to singleton)
        """
        self.config = config
        self.generator = generator
        self.coordinator = coordinator
        self._responses = responses
        self._classifier = classifier or get_intent_classifier()
        self._extractor = extractor or get_entity_extractor()
        self._flow = flow or get_conversation_flow()

    @property
    def clock(self) -> TimeZoneClock:
        return self.generator.clock

    async def close(self) -> None:
        await self._responses.close()

    async def process(self, turn: TurnInput) -> EngineResponse:
        """Process one conversational turn.

        Args:
            turn: Message and/or structured action plus client-held state

        Returns:
            EngineResponse with the reply and the session snapshot
        """
        start_time = _utcnow()
        session = ConversationSession.from_turn(turn)
        intent_result = IntentResult(intent=Intent.FALLBACK)

        try:
            entities = self._extractor.extract(turn.message, self.clock.today())
            intent_result = self._classifier.classify(strip_email(turn.message))

            action = self._flow.process(session, turn, intent_result, entities)
            reply = await self._execute_action(session, action)
            reply = await self._smooth(reply, session)

        except Exception as e:
            logger.error(f"Error processing turn for session {session.session_id}: {e}", exc_info=True)
            reply = ErrorReply(Copy.GENERIC_ERROR, code="internal_error")

        processing_time_ms = (_utcnow() - start_time).total_seconds() * 1000
        logger.info(
            f"Turn {session.session_id}: intent={intent_result.intent.value} "
            f"reply={reply.type} state={session.state.value} ({processing_time_ms:.0f}ms)"
        )

        return EngineResponse(
            reply=reply,
            session=session,
            intent=intent_result.intent,
            processing_time_ms=processing_time_ms,
        )

    async def _execute_action(self, session: ConversationSession, action: FlowAction) -> Reply:
        """Execute flow action and build the reply."""
        action_type = action.action_type

        if action_type == ACTION_BOOK:
            return await self._book(session)

        if action_type == ACTION_BOOK_EXACT:
            try:
                return await self._book_exact(session, action.date, action.metadata["time_minutes"])
            except NotConnectedError:
                return ErrorReply(Copy.NOT_CONNECTED, code="not_connected")

        if action_type == ACTION_SHOW_SLOTS:
            try:
                return await self._show_slots(session, action.day_part)
            except NotConnectedError:
                return ErrorReply(Copy.NOT_CONNECTED, code="not_connected")

        if action_type == ACTION_NEED_EMAIL:
            return self._need_email(session)

        if action_type == ACTION_INVALID_EMAIL:
            return ErrorReply(Copy.INVALID_EMAIL, code="invalid_email")

        if action_type == ACTION_INVALID_PICK:
            return ErrorReply(
                f"{action.message} Please pick one of the listed times.",
                code="invalid_selection",
            )

        if action_type == ACTION_EMAIL_ACK:
            return TextReply(Copy.EMAIL_ACK.format(email=session.email))

        if action_type == ACTION_ASK_DAY:
            return TextReply(f"{Copy.HUMAN} {self._responses.ask_day()}")

        if action_type == ACTION_PAY:
            if not self.config.payment_link:
                return ErrorReply(Copy.CHECKOUT_UNAVAILABLE, code="checkout_unavailable")
            return ActionReply(action="open_url", url=self.config.payment_link, text=Copy.CHECKOUT)

        if action_type == ACTION_PRICING:
            return TextReply(self._responses.pricing())

        if action_type == ACTION_CAPABILITY:
            return TextReply(Copy.CAPABILITY)

        if action_type == ACTION_GREET:
            return TextReply(self._responses.greeting(session.session_id))

        return TextReply(Copy.FALLBACK)

    async def _smooth(self, reply: Reply, session: ConversationSession) -> Reply:
        """Tone-smooth conversational text; leave errors and confirmations as written."""
        if isinstance(reply, (TextReply, SlotsReply)):
            reply.text = await self._responses.tone(reply.text, session.session_id)
        return reply

    # === Slots ===

    async def list_slots(
        self,
        from_date: Optional[date] = None,
        days: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> SlotBatch:
        """Generate slots with the configured lead time and granularity."""
        return await self.generator.generate(
            from_date=from_date or self.clock.today(),
            horizon_days=days or self.config.horizon_days,
            slot_minutes=self.config.slot_minutes,
            lead_time_hours=self.config.lead_time_hours,
            max_count=limit or self.config.max_slots,
        )

    async def _show_slots(self, session: ConversationSession, day_part: Optional[DayPart]) -> Reply:
        requested = session.date_filter
        if requested is not None:
            batch = await self.list_slots(requested, days=1)
        else:
            batch = await self.list_slots()

        candidates = filter_by_day_part(batch.slots, day_part, self.clock)
        enabled = [slot for slot in candidates if not slot.busy]

        if enabled:
            return self._slots_reply(session, candidates, requested)

        if batch.degraded:
            return ErrorReply(Copy.FETCH_FAILED, code="calendar_unavailable")

        if requested is None:
            return await self._next_available(session, batch, day_part)

        found = await self._scan_forward(requested, day_part)
        if found is None:
            return TextReply(self._responses.nothing_open(self.config.skip_ahead_days))

        next_day, next_candidates = found
        session.set_date(next_day)
        reply = self._slots_reply(session, next_candidates, next_day)
        reply.text = self._responses.day_full(
            requested, next_day, [slot for slot in next_candidates if not slot.busy]
        )
        return reply

    async def _next_available(
        self, session: ConversationSession, batch: SlotBatch, day_part: Optional[DayPart]
    ) -> Reply:
        """
        The capped batch had nothing open. If the cap cut the horizon short,
        keep walking day by day from the last day it reached.
        """
        found = None
        if len(batch) >= self.config.max_slots:
            last_day = self.clock.instant_to_wall(batch.slots[-1].start).as_date()
            horizon_end = self.clock.today() + timedelta(days=self.config.horizon_days - 1)
            found = await self._scan_forward(
                last_day - timedelta(days=1), day_part, days=(horizon_end - last_day).days + 1
            )

        if found is None:
            return TextReply(self._responses.nothing_open(self.config.horizon_days))

        next_day, next_candidates = found
        session.set_date(next_day)
        return self._slots_reply(session, next_candidates, next_day)

    async def _scan_forward(
        self, after: date, day_part: Optional[DayPart], days: Optional[int] = None
    ) -> Optional[tuple[date, list[Slot]]]:
        """First later day (within `days`, default skip_ahead_days) with an enabled slot."""
        if days is None:
            days = self.config.skip_ahead_days
        for offset in range(1, days + 1):
            day = after + timedelta(days=offset)
            batch = await self.list_slots(day, days=1)
            if batch.degraded:
                continue
            candidates = filter_by_day_part(batch.slots, day_part, self.clock)
            if any(not slot.busy for slot in candidates):
                logger.debug(f"Skipped ahead from {after} to {day}")
                return day, candidates
        return None

    def _slots_reply(
        self,
        session: ConversationSession,
        candidates: list[Slot],
        day: Optional[date],
    ) -> SlotsReply:
        """Page of slots plus spoken summary of the first open ones."""
        page_size = self.config.page_size
        start = session.page * page_size
        if start >= len(candidates):
            session.page = 0
            start = 0

        page = candidates[start:start + page_size]
        page_enabled = [slot for slot in page if not slot.busy]
        spoken = page_enabled or [slot for slot in candidates if not slot.busy]

        return SlotsReply(
            text=self._responses.slot_offer(spoken),
            slots=page,
            date=day,
            page=session.page,
            has_more=len(candidates) > start + page_size,
        )

    # === Booking ===

    async def _book(self, session: ConversationSession) -> Reply:
        pending = session.pending
        if self.coordinator is None:
            session.outcome = ConversationState.FAILED
            return ErrorReply(Copy.NOT_CONNECTED, code="not_connected")

        try:
            outcome = await self.coordinator.book(
                pending.start, pending.end, session.email, session.session_id
            )

        except ValidationError as e:
            session.outcome = ConversationState.FAILED
            if e.field == "email":
                return ErrorReply(Copy.INVALID_EMAIL, code="invalid_email")
            session.pending = None
            if e.field == "start":
                return await self._past_slot(session)
            return ErrorReply(f"{e.message} Please pick another time.", code="invalid_selection")

        except RaceError:
            session.outcome = ConversationState.FAILED
            session.pending = None
            return await self._nearby_slots(session, pending.start)

        except AuthError as e:
            logger.error(f"Calendar credential rejected while booking: {e}")
            session.outcome = ConversationState.FAILED
            return ErrorReply(Copy.REAUTHORIZE, code="reauthorize")

        except ConflictOrQuotaError as e:
            logger.warning(f"Calendar refused booking for {session.session_id}: {e}")
            session.outcome = ConversationState.FAILED
            session.pending = None
            return ErrorReply(Copy.BOOK_REJECTED, code="booking_rejected")

        except ExternalCallError as e:
            logger.warning(f"Booking failed for {session.session_id}, keeping selection: {e}")
            session.outcome = ConversationState.FAILED
            return ErrorReply(Copy.BOOK_FAILED, code="booking_failed")

        except NotConnectedError:
            session.outcome = ConversationState.FAILED
            return ErrorReply(Copy.NOT_CONNECTED, code="not_connected")

        session.pending = None
        session.set_date(None)
        session.outcome = ConversationState.BOOKED

        when = f"{outcome.when} {self._responses.zone_label}"
        return BookedReply(
            text=self._responses.booked(when, outcome.email, already=outcome.already_booked),
            when=when,
            meet_link=outcome.join_link,
            event_id=outcome.event_id,
        )

    def _need_email(self, session: ConversationSession) -> NeedEmailReply:
        when = f"{self.clock.label(session.pending.start)} {self._responses.zone_label}"
        return NeedEmailReply(text=self._responses.ask_email(when), pending=session.pending)

    async def _book_exact(self, session: ConversationSession, day: date, time_minutes: int) -> Reply:
        """
        A typed day and time ("fri 10am"). Only a slot that is live and open
        right now is held; otherwise the closest open times that day are offered.
        """
        wanted = self.clock.wall_to_instant(WallTime.at(day, time_minutes, self.clock.zone_id))
        batch = await self.list_slots(day, days=1)
        match = next((slot for slot in batch.slots if slot.start == wanted and not slot.busy), None)

        if match is None:
            if batch.degraded:
                return ErrorReply(Copy.FETCH_FAILED, code="calendar_unavailable")
            logger.debug(f"Typed time {wanted.isoformat()} is not open for {session.session_id}")
            return await self._nearby_slots(session, wanted, Copy.EXACT_UNAVAILABLE)

        session.pending = PendingSelection(match.start, match.end, session.session_id)
        if not session.email:
            return self._need_email(session)
        return await self._book(session)

    async def _past_slot(self, session: ConversationSession) -> Reply:
        """The held time started already; offer the next openings instead."""
        session.set_date(None)
        reply = await self._show_slots(session, None)
        if isinstance(reply, SlotsReply):
            reply.text = Copy.PAST_SLOT
        return reply

    async def _nearby_slots(
        self, session: ConversationSession, taken_start: datetime, text: str = Copy.SLOT_TAKEN
    ) -> Reply:
        """Fresh list for the taken slot's day, closest times first."""
        day = self.clock.instant_to_wall(taken_start).as_date()
        session.set_date(day)

        batch = await self.list_slots(day, days=1)
        enabled = [slot for slot in batch.slots if not slot.busy]
        if not enabled:
            return SlotsReply(text=f"{text} {self._responses.ask_day()}", slots=[], date=day)

        nearest = sorted(enabled, key=lambda slot: abs((slot.start - taken_start).total_seconds()))
        narrowed = sorted(nearest[: self.config.page_size], key=lambda slot: slot.start)
        return SlotsReply(text=text, slots=narrowed, date=day)


def build_scheduling_engine(settings: Optional[Settings] = None) -> SchedulingEngine:
    """Wire the engine and its collaborators from settings.

    Raises:
        ConfigurationError: If the booking configuration is invalid
    """
    from app.infra.airtable import get_lead_store
    from app.infra.claude import ClaudeClient
    from app.infra.google_calendar import get_calendar_client
    from app.infra.notifications import get_notification_service

    settings = settings or get_settings()
    config = build_booking_config(settings)
    clock = TimeZoneClock(config.zone_id)

    calendar = get_calendar_client() if settings.calendar_configured else None
    if calendar is None:
        logger.warning("Google Calendar is not configured; slots will not be checked and booking is disabled")

    generator = SlotGenerator(
        clock,
        config.rules,
        BusyTimeOracle(calendar, config.calendar_id, config.busy_fallback),
    )

    coordinator = None
    if calendar is not None:
        coordinator = BookingCoordinator(
            clock=clock,
            calendar=calendar,
            busy_source=calendar,
            lead_store=get_lead_store(),
            notifier=get_notification_service(),
            slot_source=generator,
            calendar_id=config.calendar_id,
            summary=config.meeting_summary,
            description=config.meeting_description,
            side_effect_timeout=config.side_effect_timeout,
        )

    claude_client = None
    if settings.tone_enabled and settings.anthropic_api_key:
        claude_client = ClaudeClient(
            api_key=settings.anthropic_api_key,
            model=settings.claude_tone_model,
        )

    responses = ResponseGenerator(
        clock,
        zone_label=config.zone_label,
        claude_client=claude_client,
        tone_enabled=settings.tone_enabled,
    )

    return SchedulingEngine(
        config=config,
        generator=generator,
        responses=responses,
        coordinator=coordinator,
    )


# Singleton
_engine: Optional[SchedulingEngine] = None


def get_scheduling_engine() -> SchedulingEngine:
    """Get singleton SchedulingEngine."""
    global _engine
    if _engine is None:
        _engine = build_scheduling_engine()
    return _engine

