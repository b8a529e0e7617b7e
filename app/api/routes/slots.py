"""
Slots Endpoint

Lists upcoming bookable slots for widgets that render a picker directly.
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from app.core.errors import NotConnectedError
from app.core.scheduling.engine import SchedulingEngine, get_scheduling_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slots", tags=["Slots"])


class SlotsResponse(BaseModel):
    slots: list[dict]
    page: int
    has_more: bool
    degraded: bool
    zone: str


@router.get(
    "",
    response_model=SlotsResponse,
    summary="List available slots",
)
async def list_slots(
    days: Optional[int] = Query(default=None, ge=1, le=31),
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    page: int = Query(default=0, ge=0),
    y: Optional[int] = None,
    m: Optional[int] = None,
    d: Optional[int] = None,
    engine: SchedulingEngine = Depends(get_scheduling_engine),
) -> SlotsResponse:
    """
    List slots from a start date (today by default).

    Passing y/m/d restricts the listing to that one day unless `days` is given.
    """
    from_date = None
    if y is not None and m is not None and d is not None:
        try:
            from_date = date(y, m, d)
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date")
        days = days or 1

    try:
        batch = await engine.list_slots(from_date, days=days, limit=limit)
    except NotConnectedError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    page_size = engine.config.page_size
    start = page * page_size
    window = batch.slots[start:start + page_size]

    return SlotsResponse(
        slots=[slot.to_dict() for slot in window],
        page=page,
        has_more=len(batch.slots) > start + page_size,
        degraded=batch.degraded,
        zone=engine.config.zone_id,
    )
