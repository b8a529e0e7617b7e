"""Tests for AvailabilityRules parsing."""

import json
import logging

import pytest

from app.core.scheduling.rules import AvailabilityRules, AvailabilityWindow, parse_hhmm


class TestParseRules:
    """Test the accepted JSON shapes."""

    def test_flat_shape(self):
        rules = AvailabilityRules.from_json(
            json.dumps({"mon": [["09:00", "12:00"], ["13:00", "17:00"]], "slotMinutes": 45})
        )

        assert rules.windows_for(1) == [(540, 720), (780, 1020)]
        assert rules.windows_for(2) == []
        assert rules.slot_minutes == 45
        assert rules.is_fallback is False

    def test_hours_shape_with_interval_key(self):
        rules = AvailabilityRules.from_json(
            json.dumps({"hours": {"sat": [["10:00", "14:00"]]}, "slotIntervalMins": 60})
        )

        assert rules.open_weekdays == {6}
        assert rules.slot_minutes == 60

    def test_windows_sorted_by_start(self):
        rules = AvailabilityRules.from_mapping({"tue": [["14:00", "16:00"], ["09:00", "10:00"]]})

        assert rules.windows_for(2) == [(540, 600), (840, 960)]

    def test_invalid_window_skipped(self, caplog):
        with caplog.at_level(logging.WARNING):
            rules = AvailabilityRules.from_mapping(
                {"wed": [["17:00", "09:00"], ["09:00", "10:00"], ["bad"]]}
            )

        assert rules.windows_for(3) == [(540, 600)]
        assert "Ignoring availability window" in caplog.text

    def test_slot_minutes_out_of_range_uses_default(self):
        rules = AvailabilityRules.from_mapping({"mon": [["09:00", "10:00"]], "slotMinutes": 2})

        assert rules.slot_minutes == 30

    def test_to_dict(self):
        rules = AvailabilityRules.from_mapping({"fri": [["09:30", "24:00"]], "slotMinutes": 15})

        assert rules.to_dict() == {"fri": [["09:30", "24:00"]], "slotMinutes": 15}


class TestFallback:
    """Missing or broken rules fall back to Mon-Fri 09:00-17:00."""

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "",
            "   ",
            "{not json",
            "[1, 2]",
            json.dumps({"mon": [["nope", "17:00"]]}),
        ],
    )
    def test_fallback(self, raw):
        rules = AvailabilityRules.from_json(raw)

        assert rules.is_fallback is True
        assert rules.open_weekdays == {1, 2, 3, 4, 5}
        assert rules.windows_for(1) == [(540, 1020)]
        assert rules.windows_for(0) == []
        assert rules.slot_minutes == 30

    def test_fallback_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING):
            AvailabilityRules.from_json("")

        assert "default availability rules" in caplog.text


class TestWindow:
    """Test window validation."""

    def test_parse_hhmm(self):
        assert parse_hhmm("00:00") == 0
        assert parse_hhmm("09:30") == 570
        assert parse_hhmm("24:00") == 1440

    @pytest.mark.parametrize("value", ["9", "25:00", "10:75", None])
    def test_parse_hhmm_rejects(self, value):
        with pytest.raises(ValueError):
            parse_hhmm(value)

    def test_window_requires_start_before_end(self):
        with pytest.raises(ValueError):
            AvailabilityWindow(1, 600, 600)

    def test_window_requires_valid_weekday(self):
        with pytest.raises(ValueError):
            AvailabilityWindow(7, 540, 600)
