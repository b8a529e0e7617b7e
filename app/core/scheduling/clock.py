"""
Time Zone Clock

Converts between wall-clock times in an IANA zone and absolute UTC instants.
The zone's offset is looked up at the instant being converted, so times on
either side of a DST transition land on the correct minute.

Wall times that do not exist (spring-forward gap) resolve forward by the
gap length; wall times that occur twice (fall-back) use the first
occurrence.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


# Fixed English tables so labels never depend on server locale
WEEKDAY_ABBR = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
MONTH_ABBR = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def load_zone(zone_id: str) -> ZoneInfo:
    """Resolve an IANA zone id.

    Raises:
        ConfigurationError: If the zone id is empty or unknown
    """
    if not zone_id:
        raise ConfigurationError("Time zone id is empty")
    try:
        return ZoneInfo(zone_id)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown time zone: {zone_id}") from e


@dataclass(frozen=True)
class WallTime:
    """A calendar date and clock time as read in a specific zone."""

    year: int
    month: int
    day: int
    hour: int
    minute: int
    zone: str

    @property
    def minute_of_day(self) -> int:
        return self.hour * 60 + self.minute

    def as_date(self) -> date:
        return date(self.year, self.month, self.day)

    @classmethod
    def at(cls, day: date, minute_of_day: int, zone: str) -> "WallTime":
        """Build a wall time from a date and minutes since midnight."""
        return cls(day.year, day.month, day.day, minute_of_day // 60, minute_of_day % 60, zone)


class TimeZoneClock:
    """
    Clock bound to the single configured zone.

    `now_fn` is injectable so tests can pin the current instant.
    """

    def __init__(
        self,
        zone_id: str,
        now_fn: Optional[Callable[[], datetime]] = None,
    ):
        self.zone_id = zone_id
        self.zone = load_zone(zone_id)
        self._now_fn = now_fn or _utcnow

    def _zone_for(self, zone_id: Optional[str]) -> ZoneInfo:
        if zone_id is None or zone_id == self.zone_id:
            return self.zone
        return load_zone(zone_id)

    def now(self) -> datetime:
        """Current instant (UTC)."""
        return self._now_fn().astimezone(timezone.utc)

    def today(self) -> date:
        """Current calendar date in the configured zone."""
        return self.now().astimezone(self.zone).date()

    def wall_to_instant(self, wall: WallTime) -> datetime:
        """
        Lower a wall time to a UTC instant.

        fold=0 gives PEP 495 semantics: a gap time is read with the offset
        in force before the transition (so it lands after the gap), and an
        ambiguous time picks its first occurrence.
        """
        zone = self._zone_for(wall.zone)
        local = datetime(wall.year, wall.month, wall.day, wall.hour, wall.minute, tzinfo=zone, fold=0)
        return local.astimezone(timezone.utc)

    def instant_to_wall(self, instant: datetime, zone: Optional[str] = None) -> WallTime:
        """Read a UTC instant as a wall time in `zone` (default: configured zone)."""
        if instant.tzinfo is None:
            raise ValueError("instant must be timezone-aware")
        zone_id = zone or self.zone_id
        local = instant.astimezone(self._zone_for(zone_id))
        return WallTime(local.year, local.month, local.day, local.hour, local.minute, zone_id)

    def weekday_of(self, instant: datetime, zone: Optional[str] = None) -> int:
        """Weekday of an instant in `zone`, 0=Sunday .. 6=Saturday."""
        return weekday_index(self.instant_to_wall(instant, zone).as_date())

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        """UTC instants of local midnight at the start of `day` and of the next day."""
        start = self.wall_to_instant(WallTime.at(day, 0, self.zone_id))
        end = self.wall_to_instant(WallTime.at(day + timedelta(days=1), 0, self.zone_id))
        return start, end

    def label(self, instant: datetime) -> str:
        """Human label such as "Thu, Sep 4, 10:00 AM"."""
        wall = self.instant_to_wall(instant)
        weekday = WEEKDAY_ABBR[weekday_index(wall.as_date())]
        return f"{weekday}, {MONTH_ABBR[wall.month - 1]} {wall.day}, {format_clock(wall.hour, wall.minute)}"

    def date_label(self, day: date) -> str:
        """Date-only label such as "Thu, Sep 4"."""
        return f"{WEEKDAY_ABBR[weekday_index(day)]}, {MONTH_ABBR[day.month - 1]} {day.day}"

    def time_label(self, instant: datetime) -> str:
        """Clock-only label such as "10:00 AM"."""
        wall = self.instant_to_wall(instant)
        return format_clock(wall.hour, wall.minute)

    def weekday_label(self, instant: datetime) -> str:
        return WEEKDAY_ABBR[self.weekday_of(instant)]


def weekday_index(day: date) -> int:
    """Sunday-based weekday index for a calendar date."""
    return (day.weekday() + 1) % 7


def format_clock(hour: int, minute: int) -> str:
    """12-hour clock text, e.g. 13:05 -> "1:05 PM"."""
    suffix = "AM" if hour < 12 else "PM"
    display = hour % 12 or 12
    return f"{display}:{minute:02d} {suffix}"


def to_iso_z(instant: datetime) -> str:
    """UTC ISO-8601 with a trailing Z, e.g. 2025-09-04T14:00:00Z."""
    return instant.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 instant. An explicit offset or Z is required.

    Raises:
        ValueError: If the value is not an ISO instant with offset
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError("empty timestamp")
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp has no UTC offset: {value}")
    return parsed.astimezone(timezone.utc)
