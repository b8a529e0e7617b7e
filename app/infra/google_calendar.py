"""
Google Calendar Client

REST client for the Google Calendar API v3 over httpx:
- OAuth: refresh-token exchange, consent URL, authorization-code exchange
- freeBusy: busy intervals for one calendar
- events.insert: booking with a Google Meet link and attendee invite
- events.list: idempotency lookup and connection check

Errors are mapped onto the scheduling taxonomy:
- no refresh token          -> NotConnectedError
- revoked / invalid token   -> AuthError
- 409 / 429 / quota 403     -> ConflictOrQuotaError
- anything else             -> ExternalCallError
"""

import asyncio
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import quote, urlencode

import httpx

from app.config import get_settings
from app.core.errors import AuthError, ConflictOrQuotaError, ExternalCallError, NotConnectedError
from app.core.scheduling.clock import parse_instant, to_iso_z
from app.core.scheduling.ports import (
    CalendarReadPort,
    CalendarWritePort,
    CreatedEvent,
    CredentialRefreshPort,
)

logger = logging.getLogger(__name__)


GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar.events"

QUOTA_REASONS = {"rateLimitExceeded", "userRateLimitExceeded", "quotaExceeded"}


def _error_detail(response: httpx.Response) -> tuple[str, set[str]]:
    """Message and reason codes from a Google error body."""
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200], set()

    if not isinstance(payload, dict):
        return str(payload)[:200], set()

    error = payload.get("error")
    if isinstance(error, str):
        # OAuth endpoint: {"error": "invalid_grant", "error_description": "..."}
        return payload.get("error_description") or error, {error}
    if isinstance(error, dict):
        reasons = {
            item.get("reason")
            for item in error.get("errors", [])
            if isinstance(item, dict) and item.get("reason")
        }
        return error.get("message", "unknown error"), reasons
    return "unknown error", set()


def event_id_for(email: str, start: datetime) -> str:
    """
    Deterministic event id for (email, start).

    Google accepts client-chosen ids in base32hex (a-v, 0-9); a hex digest
    with a "bk" prefix fits. Inserting the same id twice returns 409.
    """
    digest = hashlib.sha1(f"{email.strip().lower()}|{to_iso_z(start)}".encode("utf-8")).hexdigest()
    return f"bk{digest}"


def join_link_of(event: dict) -> Optional[str]:
    """Meet link from an event: hangoutLink, else the video entry point."""
    if event.get("hangoutLink"):
        return event["hangoutLink"]
    entry_points = (event.get("conferenceData") or {}).get("entryPoints") or []
    for entry in entry_points:
        if entry.get("entryPointType") == "video" and entry.get("uri"):
            return entry["uri"]
    return None


class GoogleOAuth(CredentialRefreshPort):
    """Refresh-token OAuth helper with access-token caching."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token or None
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._client = http_client
        self._access_token: Optional[str] = None
        self._expires_at: Optional[datetime] = None
        self._refresh_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return bool(self.refresh_token)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _token_is_fresh(self) -> bool:
        if self._access_token is None or self._expires_at is None:
            return False
        return datetime.now(timezone.utc) < self._expires_at

    async def get_access_token(self, force_refresh: bool = False) -> str:
        """Short-lived access token, refreshed when stale or forced.

        Raises:
            NotConnectedError: No refresh token provisioned
            AuthError: Refresh token revoked or invalid
            ExternalCallError: Token endpoint unreachable or failing
        """
        if not self.refresh_token:
            raise NotConnectedError("Google Calendar is not connected (no refresh token)")

        if not force_refresh and self._token_is_fresh():
            return self._access_token

        async with self._refresh_lock:
            if not force_refresh and self._token_is_fresh():
                return self._access_token
            payload = await self._token_request({
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            })

            access_token = payload.get("access_token")
            if not isinstance(access_token, str) or not access_token:
                raise ExternalCallError("Google token response is missing access_token")

            try:
                expires_in = int(payload.get("expires_in", 3600))
            except (TypeError, ValueError):
                expires_in = 3600
            # Refresh a minute early
            self._access_token = access_token
            self._expires_at = datetime.now(timezone.utc) + timedelta(seconds=max(expires_in - 60, 30))
            logger.debug("Refreshed Google access token")
            return self._access_token

    def authorization_url(self, state: str, force_consent: bool = False) -> str:
        """Consent URL for the one-time calendar connection."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri or "",
            "response_type": "code",
            "scope": CALENDAR_SCOPE,
            "access_type": "offline",
            "include_granted_scopes": "true",
            "state": state,
        }
        if force_consent:
            params["prompt"] = "consent"
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict:
        """Exchange an authorization code for tokens (includes refresh_token on first consent)."""
        return await self._token_request({
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri or "",
            "grant_type": "authorization_code",
        })

    async def _token_request(self, data: dict) -> dict:
        client = await self._get_client()
        try:
            response = await client.post(
                GOOGLE_OAUTH_TOKEN_URL,
                data=data,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise ExternalCallError(f"Google token request failed: {e}") from e

        if response.status_code in (400, 401):
            message, reasons = _error_detail(response)
            if reasons & {"invalid_grant", "invalid_client", "unauthorized_client"}:
                logger.error(f"Google credential rejected: {message}")
                raise AuthError(f"Google credential rejected: {message}", response.status_code)
            raise ExternalCallError(f"Google token request failed: {message}", response.status_code)
        if response.status_code >= 300:
            message, _ = _error_detail(response)
            raise ExternalCallError(
                f"Google token request failed ({response.status_code}): {message}",
                response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ExternalCallError("Google token endpoint returned invalid JSON") from e
        if not isinstance(payload, dict):
            raise ExternalCallError("Google token endpoint returned an unexpected payload")
        return payload


class GoogleCalendarClient(CalendarReadPort, CalendarWritePort):
    """
    Google Calendar REST client.

    Endpoints used:
    - POST /freeBusy
    - POST /calendars/{id}/events (conferenceDataVersion=1, sendUpdates=all)
    - GET  /calendars/{id}/events
    - GET  /calendars/{id}/events/{eventId}
    """

    def __init__(
        self,
        oauth: CredentialRefreshPort,
        zone_id: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        """Initialize client.

        Args:
            oauth: Access token source
            zone_id: IANA zone events are written in
            http_client: Shared httpx client (created lazily if omitted)
            timeout: Request timeout in seconds
        """
        self._oauth = oauth
        self._zone_id = zone_id
        self.timeout = timeout
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # === Transport ===

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[dict[str, Any]] = None,
    ) -> dict:
        """Authenticated request; retries once with a forced refresh on 401."""
        response = await self._send(method, path, params, json_body, force_refresh=False)
        if response.status_code == 401:
            response = await self._send(method, path, params, json_body, force_refresh=True)

        if response.status_code < 300:
            if response.status_code == 204 or not response.content:
                return {}
            try:
                payload = response.json()
            except ValueError as e:
                raise ExternalCallError("Google Calendar returned invalid JSON") from e
            return payload if isinstance(payload, dict) else {}

        message, reasons = _error_detail(response)
        status = response.status_code
        if status == 401:
            raise AuthError(f"Google Calendar rejected the credential: {message}", status)
        if status in (409, 429) or (status == 403 and reasons & QUOTA_REASONS):
            raise ConflictOrQuotaError(f"Google Calendar refused ({status}): {message}", status)
        if status == 403:
            raise AuthError(f"Google Calendar access denied: {message}", status)
        raise ExternalCallError(f"Google Calendar request failed ({status}): {message}", status)

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]],
        json_body: Optional[dict[str, Any]],
        force_refresh: bool,
    ) -> httpx.Response:
        token = await self._oauth.get_access_token(force_refresh=force_refresh)
        client = await self._get_client()
        try:
            return await client.request(
                method,
                f"{GOOGLE_CALENDAR_API_BASE_URL}{path}",
                params=params,
                json=json_body,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise ExternalCallError(f"Google Calendar request failed: {e}") from e

    # === Free/busy ===

    async def free_busy(
        self, calendar_id: str, start: datetime, end: datetime
    ) -> list[tuple[datetime, datetime]]:
        """Busy intervals overlapping [start, end).

        Args:
            calendar_id: Calendar to query
            start: Range start (UTC)
            end: Range end (UTC)

        Returns:
            List of (start, end) UTC instants
        """
        payload = await self._request(
            "POST",
            "/freeBusy",
            json_body={
                "timeMin": to_iso_z(start),
                "timeMax": to_iso_z(end),
                "timeZone": self._zone_id,
                "items": [{"id": calendar_id}],
            },
        )

        calendars = payload.get("calendars")
        if not isinstance(calendars, dict):
            raise ExternalCallError("freeBusy response is missing calendars")
        entry = calendars.get(calendar_id)
        if entry is None and len(calendars) == 1:
            entry = next(iter(calendars.values()))
        if not isinstance(entry, dict):
            raise ExternalCallError(f"freeBusy response has no entry for {calendar_id}")
        if entry.get("errors"):
            reasons = ", ".join(str(item.get("reason")) for item in entry["errors"])
            raise ExternalCallError(f"freeBusy failed for {calendar_id}: {reasons}")

        intervals = []
        for window in entry.get("busy", []):
            try:
                busy_start = parse_instant(window["start"])
                busy_end = parse_instant(window["end"])
            except (KeyError, TypeError, ValueError) as e:
                raise ExternalCallError(f"Unreadable busy window {window!r}") from e
            if busy_end > busy_start:
                intervals.append((busy_start, busy_end))
        return intervals

    # === Events ===

    async def create_event(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
        attendee_email: str,
        summary: str,
        description: Optional[str] = None,
    ) -> CreatedEvent:
        """Insert an event with a Meet link and email invite.

        The event id is derived from (attendee, start), so a repeated insert
        for the same booking returns the existing event instead of a duplicate.

        Raises:
            ConflictOrQuotaError: Quota hit, or the id belongs to a cancelled event
            AuthError: Credential rejected
            ExternalCallError: Any other failure
        """
        event_id = event_id_for(attendee_email, start)
        body = {
            "id": event_id,
            "summary": summary,
            "description": description or "",
            "start": {"dateTime": to_iso_z(start), "timeZone": self._zone_id},
            "end": {"dateTime": to_iso_z(end), "timeZone": self._zone_id},
            "attendees": [{"email": attendee_email}],
            "conferenceData": {
                "createRequest": {
                    "requestId": event_id,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
            "reminders": {"useDefault": True},
        }
        path = f"/calendars/{quote(calendar_id, safe='')}/events"

        try:
            event = await self._request(
                "POST",
                path,
                params={"conferenceDataVersion": 1, "sendUpdates": "all"},
                json_body=body,
            )
        except ConflictOrQuotaError as e:
            if e.status_code != 409:
                raise
            return await self._existing_event(calendar_id, event_id)

        logger.info(f"Created calendar event {event.get('id', event_id)}")
        return CreatedEvent(
            event_id=event.get("id", event_id),
            join_link=join_link_of(event),
            html_link=event.get("htmlLink"),
        )

    async def _existing_event(self, calendar_id: str, event_id: str) -> CreatedEvent:
        event = await self._request(
            "GET", f"/calendars/{quote(calendar_id, safe='')}/events/{event_id}"
        )
        if event.get("status") == "cancelled":
            raise ConflictOrQuotaError(f"Event {event_id} was cancelled and cannot be re-created", 409)
        logger.info(f"Calendar event {event_id} already exists, reusing it")
        return CreatedEvent(
            event_id=event_id,
            join_link=join_link_of(event),
            html_link=event.get("htmlLink"),
            already_existed=True,
        )

    async def find_event(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
        attendee_email: str,
    ) -> Optional[CreatedEvent]:
        """Existing live event starting at `start` with this attendee."""
        payload = await self._request(
            "GET",
            f"/calendars/{quote(calendar_id, safe='')}/events",
            params={
                "timeMin": to_iso_z(start),
                "timeMax": to_iso_z(end),
                "singleEvents": "true",
                "showDeleted": "false",
                "q": attendee_email,
                "maxResults": 10,
            },
        )
        wanted = attendee_email.strip().lower()
        for event in payload.get("items", []):
            if event.get("status") == "cancelled":
                continue
            raw_start = (event.get("start") or {}).get("dateTime")
            try:
                if not raw_start or parse_instant(raw_start) != start:
                    continue
            except ValueError:
                continue
            emails = {(a.get("email") or "").lower() for a in event.get("attendees", [])}
            if wanted in emails:
                return CreatedEvent(
                    event_id=event.get("id", ""),
                    join_link=join_link_of(event),
                    html_link=event.get("htmlLink"),
                    already_existed=True,
                )
        return None

    async def check_connection(self, calendar_id: str) -> dict:
        """Cheap authenticated read proving the connection works."""
        payload = await self._request(
            "GET",
            f"/calendars/{quote(calendar_id, safe='')}/events",
            params={"maxResults": 1, "singleEvents": "true"},
        )
        return {
            "ok": True,
            "calendar_id": calendar_id,
            "time_zone": payload.get("timeZone"),
            "items": len(payload.get("items", [])),
        }


# Singletons
_oauth: Optional[GoogleOAuth] = None
_calendar: Optional[GoogleCalendarClient] = None


def get_google_oauth() -> GoogleOAuth:
    """Get singleton GoogleOAuth built from settings."""
    global _oauth
    if _oauth is None:
        settings = get_settings()
        _oauth = GoogleOAuth(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            refresh_token=settings.google_refresh_token,
            redirect_uri=settings.google_redirect_uri,
            timeout=settings.calendar_timeout,
        )
    return _oauth


def get_calendar_client() -> GoogleCalendarClient:
    """Get singleton GoogleCalendarClient."""
    global _calendar
    if _calendar is None:
        settings = get_settings()
        _calendar = GoogleCalendarClient(
            oauth=get_google_oauth(),
            zone_id=settings.booking_tz,
            timeout=settings.calendar_timeout,
        )
    return _calendar


async def close_google_clients() -> None:
    """Close shared HTTP clients (shutdown hook)."""
    if _calendar is not None:
        await _calendar.close()
    if _oauth is not None:
        await _oauth.close()
