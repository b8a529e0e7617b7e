"""
Schedule Endpoint

Direct booking for clients that already hold a slot and an email, outside
the chat flow. Uses the same coordinator, so the same idempotency holds.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.core.errors import (
    AuthError,
    ConflictOrQuotaError,
    ExternalCallError,
    NotConnectedError,
    RaceError,
    ValidationError,
)
from app.core.scheduling.clock import parse_instant
from app.core.scheduling.engine import SchedulingEngine, get_scheduling_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedule", tags=["Schedule"])


class ScheduleRequest(BaseModel):
    start: str = Field(..., examples=["2025-09-04T14:00:00Z"])
    end: str = Field(..., examples=["2025-09-04T14:30:00Z"])
    email: str = Field(..., examples=["jane@acme.com"])
    session_id: Optional[str] = None


class ScheduleResponse(BaseModel):
    ok: bool
    event_id: str
    when: str
    meet_link: Optional[str] = None
    html_link: Optional[str] = None
    already_booked: bool = False


@router.post(
    "",
    response_model=ScheduleResponse,
    summary="Book a slot",
    responses={
        400: {"description": "Invalid slot or email"},
        401: {"description": "Calendar needs re-authorization"},
        409: {"description": "Slot no longer available, or calendar refused the write"},
        502: {"description": "Calendar unreachable"},
        503: {"description": "Calendar not connected"},
    },
)
async def schedule(
    request: ScheduleRequest,
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> ScheduleResponse:
    """Book a meeting for the given interval and invitee."""
    if engine.coordinator is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Calendar not configured")

    try:
        start = parse_instant(request.start)
        end = parse_instant(request.end)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        outcome = await engine.coordinator.book(start, end, request.email, request.session_id)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except RaceError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)
    except ConflictOrQuotaError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    except ExternalCallError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    except NotConnectedError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)

    return ScheduleResponse(
        ok=True,
        event_id=outcome.event_id,
        when=f"{outcome.when} {engine.config.zone_label}",
        meet_link=outcome.join_link,
        html_link=outcome.html_link,
        already_booked=outcome.already_booked,
    )
