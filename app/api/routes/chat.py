"""
Chat API Endpoint.

One conversational turn per request. The conversation state lives on the
client: it sends back the `session` snapshot from the previous response
and the server never stores anything between turns.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.core.intelligence.session.models import TurnInput
from app.core.scheduling.engine import SchedulingEngine, get_scheduling_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])


class HistoryItem(BaseModel):
    """One prior turn."""

    role: str = Field(..., examples=["user"])
    content: str = ""


class DatePayload(BaseModel):
    """Calendar date in the booking zone."""

    y: int
    m: int
    d: int


class TimeRange(BaseModel):
    start: str = Field(..., examples=["2025-09-04T14:00:00Z"])
    end: str = Field(..., examples=["2025-09-04T14:30:00Z"])


class PickSlot(TimeRange):
    """Structured slot pick, optionally carrying the invitee email."""

    email: Optional[str] = None


class ProvideEmail(BaseModel):
    email: str


class Filters(BaseModel):
    date: Optional[DatePayload] = None
    page: int = Field(default=0, ge=0)


class ChatRequest(BaseModel):
    """Chat turn request."""

    session_id: Optional[str] = Field(
        default=None,
        description="Session ID from the previous response",
        examples=["550e8400-e29b-41d4-a716-446655440000"],
    )
    message: Optional[str] = Field(
        default=None,
        max_length=2000,
        description="User's message",
        examples=["any times friday afternoon?"],
    )
    pick_slot: Optional[PickSlot] = None
    provide_email: Optional[ProvideEmail] = None
    pending: Optional[TimeRange] = None
    email: Optional[str] = None
    history: list[HistoryItem] = Field(default_factory=list)
    filters: Optional[Filters] = None

    def to_turn(self) -> TurnInput:
        """Flatten the wire payload into a TurnInput."""
        filters = self.filters or Filters()
        return TurnInput(
            session_id=self.session_id,
            message=self.message,
            pick_start=self.pick_slot.start if self.pick_slot else None,
            pick_end=self.pick_slot.end if self.pick_slot else None,
            pick_email=self.pick_slot.email if self.pick_slot else None,
            provided_email=self.provide_email.email if self.provide_email else None,
            pending_start=self.pending.start if self.pending else None,
            pending_end=self.pending.end if self.pending else None,
            email=self.email,
            history=[item.model_dump() for item in self.history],
            date=filters.date.model_dump() if filters.date else None,
            page=filters.page,
        )


class ChatResponse(BaseModel):
    """Chat response envelope."""

    reply: dict = Field(..., description="Tagged reply: text, slots, need_email, booked, action or error")
    state: str = Field(..., description="Conversation state after this turn")
    session: dict = Field(..., description="Snapshot to send back with the next turn")
    intent: Optional[str] = None
    processing_time_ms: Optional[float] = None


@router.post(
    "",
    response_model=ChatResponse,
    status_code=status.HTTP_200_OK,
    summary="Send a chat turn",
    description="Send a message or structured action and get the assistant's reply.",
)
async def chat(
    request: ChatRequest,
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> ChatResponse:
    """
    Process one turn.

    Errors from the calendar or lead store come back as an `error` reply
    with status 200, so the client can keep the conversation going.
    """
    response = await engine.process(request.to_turn())
    return ChatResponse(**response.to_dict())
