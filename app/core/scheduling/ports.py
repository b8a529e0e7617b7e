"""
Collaborator ports for the scheduling core.

The core only talks to the outside world through these interfaces. Concrete
adapters live in app/infra (Google Calendar, Airtable, SendGrid). Every
adapter raises ExternalCallError (or a subclass) on failure and owns its own
timeouts.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class CreatedEvent:
    """Result of a calendar write."""

    event_id: str
    join_link: Optional[str] = None
    html_link: Optional[str] = None
    already_existed: bool = False


class CalendarReadPort(ABC):
    @abstractmethod
    async def free_busy(
        self, calendar_id: str, start: datetime, end: datetime
    ) -> list[tuple[datetime, datetime]]:
        """Busy intervals overlapping [start, end), as UTC instants."""
        raise NotImplementedError


class CalendarWritePort(ABC):
    @abstractmethod
    async def create_event(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
        attendee_email: str,
        summary: str,
        description: Optional[str] = None,
    ) -> CreatedEvent:
        """Create an event with a video link and an attendee invite."""
        raise NotImplementedError

    @abstractmethod
    async def find_event(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
        attendee_email: str,
    ) -> Optional[CreatedEvent]:
        """Existing non-cancelled event at `start` with this attendee, if any."""
        raise NotImplementedError


class CredentialRefreshPort(ABC):
    @abstractmethod
    async def get_access_token(self, force_refresh: bool = False) -> str:
        """Short-lived access token. Raises NotConnectedError or AuthError."""
        raise NotImplementedError


class LeadStorePort(ABC):
    @abstractmethod
    async def upsert_lead(
        self, email: str, status: str, appointment_time: Optional[datetime] = None
    ) -> None:
        """Create or update the lead keyed by email."""
        raise NotImplementedError


class NotifyPort(ABC):
    @abstractmethod
    async def notify_booking(
        self, email: str, when: str, join_link: Optional[str] = None
    ) -> None:
        """Tell the operator a meeting was booked."""
        raise NotImplementedError
