"""
Conversation Flow Manager.

Decides what one turn should do, from the rebuilt session, the classified
intent and the extracted entities. The flow updates the session's client
state (date filter, email, pending selection) and returns a FlowAction; the
engine then executes it (lists slots, books, or answers).

Precedence within a turn:
1. A structured slot pick
2. A structured email reveal
3. An email typed in free text
4. The classified intent
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from app.core.errors import ValidationError
from app.core.intelligence.entities.extractor import is_valid_email
from app.core.intelligence.entities.types import ExtractedEntities
from app.core.intelligence.intent.types import DayPart, Intent, IntentResult
from app.core.intelligence.session.models import ConversationSession, PendingSelection, TurnInput
from app.core.intelligence.session.state import ConversationState, can_transition

logger = logging.getLogger(__name__)


# Action types
ACTION_SHOW_SLOTS = "show_slots"
ACTION_BOOK = "book"
ACTION_BOOK_EXACT = "book_exact"
ACTION_NEED_EMAIL = "need_email"
ACTION_INVALID_EMAIL = "invalid_email"
ACTION_INVALID_PICK = "invalid_pick"
ACTION_EMAIL_ACK = "email_ack"
ACTION_ASK_DAY = "ask_day"
ACTION_PAY = "pay"
ACTION_PRICING = "pricing"
ACTION_CAPABILITY = "capability"
ACTION_GREET = "greet"
ACTION_FALLBACK = "fallback"


@dataclass
class FlowAction:
    """Action determined by flow manager."""

    next_state: ConversationState
    action_type: str
    date: Optional[date] = None            # Day to list (None = next available)
    day_part: Optional[DayPart] = None
    message: Optional[str] = None          # Corrective text for invalid input
    metadata: dict = field(default_factory=dict)


class ConversationFlow:
    """
    State machine manager for scheduling conversations.

    Transitions:
    - book/day: browsing, list slots for the date (or next available)
    - day plus a clock time: hold that exact slot if it is open (engine checks)
    - pick without email: awaiting_confirmation, ask for email, no write
    - pick with known email, or email while awaiting: book
    - pay: idle, scheduling state cleared
    - human: browse if a day is set, otherwise ask which day
    - nothing actionable on a first web turn: greet
    """

    def process(
        self,
        session: ConversationSession,
        turn: TurnInput,
        intent: IntentResult,
        entities: ExtractedEntities,
    ) -> FlowAction:
        """Process user input and determine next action.

        Args:
            session: Session rebuilt from the request (updated in place)
            turn: Raw turn input
            intent: Classified intent
            entities: Extracted entities

        Returns:
            FlowAction with next state and action
        """
        current_state = session.state
        action = self._decide(session, turn, intent, entities)

        if not can_transition(current_state, action.next_state):
            logger.warning(
                f"Unexpected transition {current_state.value} -> {action.next_state.value} "
                f"for session {session.session_id}"
            )

        logger.debug(
            f"Flow: {current_state.value} -> {action.next_state.value} "
            f"(action={action.action_type}, intent={intent.intent.value})"
        )
        return action

    def _decide(
        self,
        session: ConversationSession,
        turn: TurnInput,
        intent: IntentResult,
        entities: ExtractedEntities,
    ) -> FlowAction:
        if turn.has_pick:
            return self._handle_pick(session, turn)

        if turn.provided_email is not None:
            return self._handle_email(session, turn.provided_email)

        if entities.email:
            if session.pending is not None:
                return self._handle_email(session, entities.email)
            session.email = entities.email
            if intent.intent in (Intent.FALLBACK, Intent.CAPABILITY):
                return self._handle_email(session, entities.email)
        elif entities.email_attempt and session.pending is not None:
            return FlowAction(
                next_state=ConversationState.AWAITING_CONFIRMATION,
                action_type=ACTION_INVALID_EMAIL,
            )

        return self._handle_intent(session, intent, entities)

    def _handle_pick(self, session: ConversationSession, turn: TurnInput) -> FlowAction:
        """A slot was picked from the list."""
        try:
            pending = PendingSelection.parse(turn.pick_start, turn.pick_end, session.session_id)
        except ValidationError as e:
            return FlowAction(
                next_state=session.state,
                action_type=ACTION_INVALID_PICK,
                message=e.message,
            )

        # A later pick supersedes any earlier one
        session.pending = pending

        if turn.pick_email:
            if not is_valid_email(turn.pick_email):
                return FlowAction(
                    next_state=ConversationState.AWAITING_CONFIRMATION,
                    action_type=ACTION_INVALID_EMAIL,
                )
            session.email = turn.pick_email.strip().lower()

        if not session.email:
            return FlowAction(
                next_state=ConversationState.AWAITING_CONFIRMATION,
                action_type=ACTION_NEED_EMAIL,
            )

        return FlowAction(next_state=ConversationState.BOOKED, action_type=ACTION_BOOK)

    def _handle_email(self, session: ConversationSession, email: str) -> FlowAction:
        """An email arrived, either structured or typed."""
        if not is_valid_email(email):
            return FlowAction(next_state=session.state, action_type=ACTION_INVALID_EMAIL)

        session.email = email.strip().lower()

        if session.pending is not None:
            return FlowAction(next_state=ConversationState.BOOKED, action_type=ACTION_BOOK)

        if session.date_filter is not None:
            return FlowAction(
                next_state=ConversationState.BROWSING,
                action_type=ACTION_SHOW_SLOTS,
                date=session.date_filter,
            )

        return FlowAction(next_state=session.state, action_type=ACTION_EMAIL_ACK)

    def _handle_intent(
        self,
        session: ConversationSession,
        intent: IntentResult,
        entities: ExtractedEntities,
    ) -> FlowAction:
        if intent.intent == Intent.PAY:
            session.clear_scheduling()
            return FlowAction(next_state=ConversationState.IDLE, action_type=ACTION_PAY)

        if intent.intent == Intent.PRICING:
            return FlowAction(next_state=session.state, action_type=ACTION_PRICING)

        if intent.intent == Intent.CAPABILITY:
            return FlowAction(next_state=session.state, action_type=ACTION_CAPABILITY)

        if intent.intent == Intent.HUMAN:
            if entities.date is not None:
                session.set_date(entities.date)
            if session.date_filter is None:
                return FlowAction(next_state=session.state, action_type=ACTION_ASK_DAY)
            return self._browse(session, entities.day_part or intent.day_part)

        if intent.intent in (Intent.BOOK, Intent.DAY):
            if entities.date is not None:
                session.set_date(entities.date)
            if entities.time_minutes is not None and session.date_filter is not None:
                return self._exact(session, entities.time_minutes)
            return self._browse(session, entities.day_part or intent.day_part)

        if session.greets_on_first_turn:
            return FlowAction(next_state=ConversationState.IDLE, action_type=ACTION_GREET)

        return FlowAction(next_state=session.state, action_type=ACTION_FALLBACK)

    def _exact(self, session: ConversationSession, time_minutes: int) -> FlowAction:
        """A typed day and time; the engine resolves it against live slots."""
        session.pending = None
        return FlowAction(
            next_state=ConversationState.AWAITING_CONFIRMATION,
            action_type=ACTION_BOOK_EXACT,
            date=session.date_filter,
            metadata={"time_minutes": time_minutes},
        )

    def _browse(self, session: ConversationSession, day_part: Optional[DayPart]) -> FlowAction:
        # Looking at times again abandons an unconfirmed pick
        if session.pending is not None:
            logger.debug(f"Dropping pending selection for {session.session_id} on new browse")
            session.pending = None
        return FlowAction(
            next_state=ConversationState.BROWSING,
            action_type=ACTION_SHOW_SLOTS,
            date=session.date_filter,
            day_part=day_part,
        )


# Singleton instance
_flow: Optional[ConversationFlow] = None


def get_conversation_flow() -> ConversationFlow:
    """Get singleton conversation flow manager."""
    global _flow
    if _flow is None:
        _flow = ConversationFlow()
    return _flow
