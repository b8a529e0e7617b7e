"""
Conversation session module.

Sessions are client-held: the server rebuilds a ConversationSession from
each request and returns the updated snapshot in the response.
"""

from .state import (
    ConversationState,
    can_transition,
    get_valid_transitions,
    is_outcome_state,
)
from .models import CHANNEL_SMS, CHANNEL_WEB, ConversationSession, PendingSelection, TurnInput

__all__ = [
    # State
    "ConversationState",
    "can_transition",
    "get_valid_transitions",
    "is_outcome_state",
    # Models
    "CHANNEL_SMS",
    "CHANNEL_WEB",
    "ConversationSession",
    "PendingSelection",
    "TurnInput",
]
