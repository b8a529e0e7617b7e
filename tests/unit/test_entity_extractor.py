"""Tests for entity extraction and day resolution."""

from datetime import date

import pytest

from app.core.intelligence.entities.extractor import (
    EntityExtractor,
    extract_email,
    is_valid_email,
    parse_clock_time,
    resolve_day,
    strip_email,
)
from app.core.intelligence.intent.types import DayPart
from tests.conftest import TODAY


class TestEmail:
    """Test email helpers."""

    def test_extract_email_lowercases(self):
        assert extract_email("send it to Jane.Doe@Acme.COM please") == "jane.doe@acme.com"

    def test_extract_email_none(self):
        assert extract_email("no email here") is None
        assert extract_email(None) is None

    @pytest.mark.parametrize(
        "value,valid",
        [
            ("jane@acme.com", True),
            (" jane@acme.co.uk ", True),
            ("jane@acme", False),
            ("jane at acme.com", False),
            ("", False),
            (None, False),
        ],
    )
    def test_is_valid_email(self, value, valid):
        assert is_valid_email(value) is valid

    def test_strip_email(self):
        assert strip_email("jane@acme.com friday") == "friday"


class TestResolveDay:
    """Day words against Thursday 2025-09-04."""

    @pytest.mark.parametrize(
        "word,expected",
        [
            ("today", date(2025, 9, 4)),
            ("tonight", date(2025, 9, 4)),
            ("tomorrow", date(2025, 9, 5)),
            ("tmrw", date(2025, 9, 5)),
            ("mon", date(2025, 9, 8)),
            ("friday", date(2025, 9, 5)),
            ("thursday", date(2025, 9, 11)),
            ("2025-09-10", date(2025, 9, 10)),
            ("9/12", date(2025, 9, 12)),
            ("9/3", date(2026, 9, 3)),
        ],
    )
    def test_resolve(self, word, expected):
        assert resolve_day(word, TODAY) == expected

    @pytest.mark.parametrize("word", [None, "", "13/45", "2025-02-30", "someday"])
    def test_unresolvable(self, word):
        assert resolve_day(word, TODAY) is None


class TestClockTime:
    """Test typed clock times."""

    @pytest.mark.parametrize(
        "text,minutes",
        [
            ("friday 10am", 10 * 60),
            ("fri at 2:30 pm", 14 * 60 + 30),
            ("12pm", 12 * 60),
            ("12 am", 0),
            ("tuesday 14:00", 14 * 60),
            ("can i book thu at 2", 14 * 60),
            ("at 9", 9 * 60),
        ],
    )
    def test_reads_times(self, text, minutes):
        assert parse_clock_time(text) == minutes

    @pytest.mark.parametrize(
        "text",
        ["9/12", "2025-09-12", "friday", "is 497 the setup fee", "13pm", "at 9/12", "10:75"],
    )
    def test_ignores_non_times(self, text):
        assert parse_clock_time(text) is None

    def test_time_next_to_date(self):
        assert parse_clock_time("9/12 at 10") == 10 * 60


class TestEntityExtractor:
    """Test full extraction."""

    @pytest.fixture
    def extractor(self):
        return EntityExtractor()

    def test_day_part_and_email(self, extractor):
        entities = extractor.extract("Friday afternoon works, Jane@Acme.com", TODAY)

        assert entities.email == "jane@acme.com"
        assert entities.date == date(2025, 9, 5)
        assert entities.day_word == "friday"
        assert entities.day_part == DayPart.AFTERNOON
        assert entities.has_any()

    def test_email_does_not_leak_day_word(self, extractor):
        entities = extractor.extract("mon@acme.com", TODAY)

        assert entities.email == "mon@acme.com"
        assert entities.date is None

    def test_email_attempt(self, extractor):
        entities = extractor.extract("it's jane@acme", TODAY)

        assert entities.email is None
        assert entities.email_attempt is True

    def test_empty_message(self, extractor):
        entities = extractor.extract("   ", TODAY)

        assert not entities.has_any()
        assert entities.email_attempt is False

    def test_day_and_time(self, extractor):
        entities = extractor.extract("Can I book Friday at 10am?", TODAY)

        assert entities.date == date(2025, 9, 5)
        assert entities.time_minutes == 10 * 60
