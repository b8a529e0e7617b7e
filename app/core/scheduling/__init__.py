"""
Scheduling Module

Availability engine and booking flow for the scheduling assistant: the
time zone clock, weekly availability rules, slot generation against the
live calendar, the conversation flow and the booking coordinator.

Only the dependency-free building blocks are re-exported here; import the
engine directly to avoid pulling settings in at package import time.

Usage:
    from app.core.scheduling.engine import get_scheduling_engine
    from app.core.intelligence.session import TurnInput

    engine = get_scheduling_engine()
    response = await engine.process(TurnInput(message="any times tomorrow?"))
    print(response.reply.to_dict())   # {"type": "slots", ...}
    print(response.session)           # Snapshot for the client to resend
"""

from app.core.scheduling.clock import TimeZoneClock, WallTime, parse_instant, to_iso_z
from app.core.scheduling.rules import AvailabilityRules, AvailabilityWindow
from app.core.scheduling.slots import (
    BusyTimeOracle,
    Slot,
    SlotBatch,
    SlotGenerator,
    filter_by_day_part,
    overlaps,
)

__all__ = [
    # Clock
    "TimeZoneClock",
    "WallTime",
    "parse_instant",
    "to_iso_z",
    # Rules
    "AvailabilityRules",
    "AvailabilityWindow",
    # Slots
    "BusyTimeOracle",
    "Slot",
    "SlotBatch",
    "SlotGenerator",
    "filter_by_day_part",
    "overlaps",
]
