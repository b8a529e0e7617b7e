"""
Conversation session models.

There is no server-side session store. The client resends its snapshot
(session id, date filter, page, email, pending selection, history) with
every turn, and the session is rebuilt from that payload.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional
from uuid import uuid4

from app.core.errors import ValidationError
from app.core.intelligence.entities.extractor import extract_email, is_valid_email
from app.core.scheduling.clock import parse_instant, to_iso_z
from .state import ConversationState

logger = logging.getLogger(__name__)

# Inbound channels
CHANNEL_WEB = "web"
CHANNEL_SMS = "sms"


@dataclass
class TurnInput:
    """One inbound turn, as received from a client."""

    session_id: Optional[str] = None
    message: Optional[str] = None

    # Structured slot pick
    pick_start: Optional[str] = None
    pick_end: Optional[str] = None
    pick_email: Optional[str] = None

    # Structured email reveal
    provided_email: Optional[str] = None

    # Client-held state
    pending_start: Optional[str] = None
    pending_end: Optional[str] = None
    email: Optional[str] = None
    history: list[dict] = field(default_factory=list)
    date: Optional[dict] = None          # {"y": 2025, "m": 9, "d": 4}
    page: int = 0
    channel: str = CHANNEL_WEB

    @property
    def has_pick(self) -> bool:
        return self.pick_start is not None or self.pick_end is not None


@dataclass
class PendingSelection:
    """A picked slot waiting for an email. At most one per session."""

    start: datetime
    end: datetime
    session_id: str = ""

    @classmethod
    def parse(
        cls, start: Optional[str], end: Optional[str], session_id: str = ""
    ) -> "PendingSelection":
        """
        Build a selection from wire timestamps.

        Raises:
            ValidationError: If either timestamp is missing or unreadable, or end <= start
        """
        if not start or not end:
            raise ValidationError("A time selection needs both a start and an end.", field="slot")
        try:
            start_at = parse_instant(start)
            end_at = parse_instant(end)
        except ValueError as e:
            raise ValidationError(f"Unreadable time selection: {e}", field="slot") from e
        if end_at <= start_at:
            raise ValidationError("The selected end time is before the start.", field="slot")
        return cls(start=start_at, end=end_at, session_id=session_id)

    def to_dict(self) -> dict:
        """Convert to the wire shape."""
        return {"start": to_iso_z(self.start), "end": to_iso_z(self.end)}


@dataclass
class ConversationSession:
    """Per-turn view of one visitor's conversation."""

    session_id: str = field(default_factory=lambda: str(uuid4()))
    date_filter: Optional[date] = None
    page: int = 0
    email: Optional[str] = None
    pending: Optional[PendingSelection] = None
    turn_count: int = 0
    channel: str = CHANNEL_WEB

    # Set once a booking attempt in this turn resolves
    outcome: Optional[ConversationState] = None

    @property
    def state(self) -> ConversationState:
        """Current state, derived from what the session holds."""
        if self.outcome is not None:
            return self.outcome
        if self.pending is not None:
            return ConversationState.AWAITING_CONFIRMATION
        if self.date_filter is not None:
            return ConversationState.BROWSING
        return ConversationState.IDLE

    @property
    def is_first_turn(self) -> bool:
        return self.turn_count == 0

    @property
    def greets_on_first_turn(self) -> bool:
        """SMS turns are stateless, so every text would look like a first turn."""
        return self.is_first_turn and self.channel == CHANNEL_WEB

    def set_date(self, day: Optional[date]) -> None:
        """Move the date filter, resetting the page when it changes."""
        if day != self.date_filter:
            self.page = 0
        self.date_filter = day

    def clear_scheduling(self) -> None:
        """Forget the date filter, page and pending selection."""
        self.date_filter = None
        self.page = 0
        self.pending = None

    def to_dict(self) -> dict:
        """Snapshot the client must resend next turn."""
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "date": (
                {"y": self.date_filter.year, "m": self.date_filter.month, "d": self.date_filter.day}
                if self.date_filter
                else None
            ),
            "page": self.page,
            "email": self.email,
            "pending": self.pending.to_dict() if self.pending else None,
            "turn_count": self.turn_count,
        }

    @classmethod
    def from_turn(cls, turn: TurnInput) -> "ConversationSession":
        """
        Rebuild the session from a client payload.

        Stale or malformed client state is dropped rather than rejected;
        only the structured pick is validated strictly (by the flow).
        """
        session_id = (turn.session_id or "").strip() or str(uuid4())

        email = turn.email.strip().lower() if is_valid_email(turn.email) else None
        if email is None:
            email = latest_email(turn.history)

        pending = None
        if turn.pending_start and turn.pending_end:
            try:
                pending = PendingSelection.parse(turn.pending_start, turn.pending_end, session_id)
            except ValidationError as e:
                logger.debug(f"Dropping unreadable pending selection for {session_id}: {e}")

        return cls(
            session_id=session_id,
            date_filter=parse_date_filter(turn.date),
            page=max(0, int(turn.page or 0)),
            email=email,
            pending=pending,
            turn_count=sum(1 for item in turn.history if item.get("role") == "user"),
            channel=turn.channel,
        )


def parse_date_filter(value: Optional[dict[str, Any]]) -> Optional[date]:
    """{"y", "m", "d"} -> date, or None when absent or invalid."""
    if not value:
        return None
    try:
        return date(int(value["y"]), int(value["m"]), int(value["d"]))
    except (KeyError, TypeError, ValueError):
        logger.debug(f"Ignoring invalid date filter: {value!r}")
        return None


def latest_email(history: list[dict]) -> Optional[str]:
    """Most recent email address a visitor typed."""
    for item in reversed(history):
        if item.get("role") != "user":
            continue
        found = extract_email(item.get("content") or "")
        if found:
            return found
    return None
