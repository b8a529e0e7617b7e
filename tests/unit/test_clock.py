"""Tests for TimeZoneClock."""

from datetime import date, datetime, timedelta, timezone

import pytest

from app.core.errors import ConfigurationError
from app.core.scheduling.clock import (
    TimeZoneClock,
    WallTime,
    format_clock,
    load_zone,
    parse_instant,
    to_iso_z,
    weekday_index,
)
from tests.conftest import ZONE, utc


class TestTimeZoneClock:
    """Test wall/instant conversion."""

    @pytest.fixture
    def clock(self):
        return TimeZoneClock(ZONE, now_fn=lambda: utc(2025, 9, 5, 2, 0))

    def test_wall_to_instant_daylight_time(self, clock):
        """EDT is UTC-4."""
        instant = clock.wall_to_instant(WallTime(2025, 9, 4, 10, 0, ZONE))

        assert instant == utc(2025, 9, 4, 14, 0)

    def test_wall_to_instant_standard_time(self, clock):
        """EST is UTC-5."""
        instant = clock.wall_to_instant(WallTime(2025, 12, 4, 10, 0, ZONE))

        assert instant == utc(2025, 12, 4, 15, 0)

    def test_spring_forward_gap_resolves_forward(self, clock):
        """02:30 doesn't exist on 2025-03-09; it lands at 03:30 EDT."""
        instant = clock.wall_to_instant(WallTime(2025, 3, 9, 2, 30, ZONE))

        assert instant == utc(2025, 3, 9, 7, 30)
        wall = clock.instant_to_wall(instant)
        assert (wall.hour, wall.minute) == (3, 30)

    def test_fall_back_uses_first_occurrence(self, clock):
        """01:30 happens twice on 2025-11-02; the EDT one is used."""
        instant = clock.wall_to_instant(WallTime(2025, 11, 2, 1, 30, ZONE))

        assert instant == utc(2025, 11, 2, 5, 30)

    def test_instant_to_wall_in_other_zone(self, clock):
        wall = clock.instant_to_wall(utc(2025, 9, 5, 2, 0), zone="UTC")

        assert (wall.year, wall.month, wall.day, wall.hour) == (2025, 9, 5, 2)
        assert wall.zone == "UTC"

    def test_instant_to_wall_rejects_naive(self, clock):
        with pytest.raises(ValueError):
            clock.instant_to_wall(datetime(2025, 9, 4, 10, 0))

    def test_weekday_depends_on_zone(self, clock):
        """22:00 Thursday in New York is already Friday in UTC."""
        instant = utc(2025, 9, 5, 2, 0)

        assert clock.weekday_of(instant) == 4
        assert clock.weekday_of(instant, zone="UTC") == 5

    def test_today_uses_configured_zone(self, clock):
        assert clock.today() == date(2025, 9, 4)

    def test_day_bounds_on_spring_forward_day(self, clock):
        start, end = clock.day_bounds(date(2025, 3, 9))

        assert start == utc(2025, 3, 9, 5, 0)
        assert end - start == timedelta(hours=23)

    def test_labels(self, clock):
        instant = utc(2025, 9, 4, 14, 0)

        assert clock.label(instant) == "Thu, Sep 4, 10:00 AM"
        assert clock.time_label(instant) == "10:00 AM"
        assert clock.weekday_label(instant) == "Thu"
        assert clock.date_label(date(2025, 9, 7)) == "Sun, Sep 7"

    def test_now_is_utc(self):
        clock = TimeZoneClock(ZONE, now_fn=lambda: datetime(2025, 9, 4, 8, 0, tzinfo=load_zone(ZONE)))

        assert clock.now() == utc(2025, 9, 4, 12, 0)
        assert clock.now().tzinfo == timezone.utc


class TestLoadZone:
    """Test zone validation."""

    def test_unknown_zone_raises(self):
        with pytest.raises(ConfigurationError):
            load_zone("Mars/Olympus_Mons")

    def test_empty_zone_raises(self):
        with pytest.raises(ConfigurationError):
            TimeZoneClock("")


class TestHelpers:
    """Test formatting and parsing helpers."""

    def test_weekday_index_is_sunday_based(self):
        assert weekday_index(date(2025, 9, 7)) == 0
        assert weekday_index(date(2025, 9, 8)) == 1
        assert weekday_index(date(2025, 9, 13)) == 6

    @pytest.mark.parametrize(
        "hour,minute,expected",
        [
            (0, 5, "12:05 AM"),
            (9, 0, "9:00 AM"),
            (12, 0, "12:00 PM"),
            (13, 5, "1:05 PM"),
            (23, 30, "11:30 PM"),
        ],
    )
    def test_format_clock(self, hour, minute, expected):
        assert format_clock(hour, minute) == expected

    def test_to_iso_z(self):
        eastern = datetime(2025, 9, 4, 10, 0, tzinfo=load_zone(ZONE))

        assert to_iso_z(eastern) == "2025-09-04T14:00:00Z"

    def test_parse_instant_accepts_z_and_offsets(self):
        assert parse_instant("2025-09-04T14:00:00Z") == utc(2025, 9, 4, 14, 0)
        assert parse_instant("2025-09-04T10:00:00-04:00") == utc(2025, 9, 4, 14, 0)

    @pytest.mark.parametrize("value", ["", "not a time", "2025-09-04T14:00:00"])
    def test_parse_instant_rejects_bad_values(self, value):
        with pytest.raises(ValueError):
            parse_instant(value)
