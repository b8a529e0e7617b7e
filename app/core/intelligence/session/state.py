"""Conversation state machine."""

from enum import Enum
from typing import Set


class ConversationState(str, Enum):
    """States in the scheduling conversation."""

    # Initial
    IDLE = "idle"

    # Looking at times
    BROWSING = "browsing"

    # Slot picked, waiting for an email
    AWAITING_CONFIRMATION = "awaiting_confirmation"

    # Outcome of a booking attempt
    BOOKED = "booked"
    FAILED = "failed"


# Valid state transitions
VALID_TRANSITIONS: dict[ConversationState, Set[ConversationState]] = {
    ConversationState.IDLE: {
        ConversationState.IDLE,
        ConversationState.BROWSING,
        ConversationState.AWAITING_CONFIRMATION,
        ConversationState.BOOKED,   # Pick with a known email
        ConversationState.FAILED,
    },
    ConversationState.BROWSING: {
        ConversationState.BROWSING,
        ConversationState.IDLE,     # pay clears the date filter
        ConversationState.AWAITING_CONFIRMATION,
        ConversationState.BOOKED,
        ConversationState.FAILED,
    },
    ConversationState.AWAITING_CONFIRMATION: {
        ConversationState.AWAITING_CONFIRMATION,  # New pick supersedes
        ConversationState.BROWSING,
        ConversationState.IDLE,
        ConversationState.BOOKED,
        ConversationState.FAILED,
    },
    ConversationState.BOOKED: {
        ConversationState.IDLE,     # Book another
        ConversationState.BROWSING,
    },
    ConversationState.FAILED: {
        ConversationState.IDLE,
        ConversationState.BROWSING,
        ConversationState.AWAITING_CONFIRMATION,  # Retry the same slot
        ConversationState.BOOKED,
        ConversationState.FAILED,
    },
}


def can_transition(from_state: ConversationState, to_state: ConversationState) -> bool:
    """Check if a state transition is valid."""
    return to_state in get_valid_transitions(from_state)


def get_valid_transitions(state: ConversationState) -> Set[ConversationState]:
    """Get all valid transitions from a state."""
    return VALID_TRANSITIONS.get(state, set())


def is_outcome_state(state: ConversationState) -> bool:
    """Check if state is the result of a booking attempt."""
    return state in {
        ConversationState.BOOKED,
        ConversationState.FAILED,
    }
