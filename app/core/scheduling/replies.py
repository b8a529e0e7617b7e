"""
Reply variants.

Every turn produces exactly one of these. `to_dict()` gives the wire shape,
tagged by `type`.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Union

from app.core.intelligence.session.models import PendingSelection
from app.core.scheduling.slots import Slot

TEXT = "text"
SLOTS = "slots"
NEED_EMAIL = "need_email"
BOOKED = "booked"
ACTION = "action"
ERROR = "error"


@dataclass
class TextReply:
    text: str
    type: str = field(default=TEXT, init=False)

    def to_dict(self) -> dict:
        return {"type": self.type, "text": self.text}


@dataclass
class SlotsReply:
    text: str
    slots: list[Slot] = field(default_factory=list)
    date: Optional[date] = None
    page: int = 0
    has_more: bool = False
    type: str = field(default=SLOTS, init=False)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "text": self.text,
            "date": self.date.isoformat() if self.date else None,
            "slots": [slot.to_dict() for slot in self.slots],
            "page": self.page,
            "has_more": self.has_more,
        }


@dataclass
class NeedEmailReply:
    """Continuation: a slot is held client-side until an email arrives."""

    text: str
    pending: PendingSelection
    type: str = field(default=NEED_EMAIL, init=False)

    def to_dict(self) -> dict:
        return {"type": self.type, "text": self.text, "pending": self.pending.to_dict()}


@dataclass
class BookedReply:
    text: str
    when: Optional[str] = None
    meet_link: Optional[str] = None
    event_id: Optional[str] = None
    type: str = field(default=BOOKED, init=False)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "text": self.text,
            "when": self.when,
            "meet_link": self.meet_link,
            "event_id": self.event_id,
        }


@dataclass
class ActionReply:
    action: str
    url: str
    text: Optional[str] = None
    type: str = field(default=ACTION, init=False)

    def to_dict(self) -> dict:
        return {"type": self.type, "action": self.action, "url": self.url, "text": self.text}


@dataclass
class ErrorReply:
    text: str
    code: Optional[str] = None
    type: str = field(default=ERROR, init=False)

    def to_dict(self) -> dict:
        return {"type": self.type, "text": self.text, "code": self.code}


Reply = Union[TextReply, SlotsReply, NeedEmailReply, BookedReply, ActionReply, ErrorReply]


def reply_text(reply: Reply) -> str:
    """Plain-text rendering, for channels without widgets (SMS)."""
    if isinstance(reply, SlotsReply):
        labels = [slot.label for slot in reply.slots if not slot.busy]
        if not labels:
            return reply.text
        return reply.text + "\n" + "\n".join(f"- {label}" for label in labels)
    if isinstance(reply, ActionReply):
        return f"{reply.text or 'Here you go:'} {reply.url}".strip()
    if isinstance(reply, BookedReply) and reply.meet_link:
        return f"{reply.text} {reply.meet_link}"
    return reply.text
