"""Tests for Response Generator."""

from dataclasses import dataclass
from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest

from app.core.scheduling.response import (
    PERSONAS,
    Copy,
    ResponseGenerator,
    greeting_for,
    persona_for,
    phrase_for_slots,
)
from app.core.scheduling.slots import Slot
from app.infra.claude import ClaudeClientError
from tests.conftest import utc


@dataclass
class MockClaudeResponse:
    """Mock Claude response."""
    text: str
    model: str = "claude-3-5-haiku-20241022"


def make_slot(start) -> Slot:
    return Slot(start=start, end=start + timedelta(minutes=30), label="")


# Fri 2025-09-05, 10:00 AM EDT onwards
FRI_10 = utc(2025, 9, 5, 14, 0)


class TestPhraseForSlots:
    """Test spoken slot summaries."""

    def test_empty(self, clock):
        assert phrase_for_slots([], clock) == "I'm not seeing anything there."

    def test_single_slot(self, clock):
        assert phrase_for_slots([make_slot(FRI_10)], clock) == "I can do Fri 10:00 AM ET."

    def test_two_slots_same_day(self, clock):
        slots = [make_slot(FRI_10), make_slot(FRI_10 + timedelta(minutes=30))]

        assert phrase_for_slots(slots, clock) == "I can do Fri 10:00 AM or 10:30 AM ET."

    def test_three_slots_same_day(self, clock):
        slots = [make_slot(FRI_10 + timedelta(minutes=30 * i)) for i in range(3)]

        assert phrase_for_slots(slots, clock) == "I can do Fri 10:00 AM, 10:30 AM, or 11:00 AM ET."

    def test_two_days(self, clock):
        thu_2pm = utc(2025, 9, 4, 18, 0)
        slots = [make_slot(thu_2pm), make_slot(FRI_10)]

        assert phrase_for_slots(slots, clock) == "I can do Thu 2:00 PM; or Fri 10:00 AM ET."

    def test_per_day_cap(self, clock):
        slots = [make_slot(FRI_10 + timedelta(minutes=30 * i)) for i in range(5)]

        phrase = phrase_for_slots(slots, clock, zone_label="EST", per_day=2)

        assert phrase == "I can do Fri 10:00 AM or 10:30 AM EST."


class TestPersonas:
    """Test persona and greeting selection."""

    def test_persona_is_stable(self):
        assert persona_for("session-1") == persona_for("session-1")

    def test_greeting_belongs_to_persona(self):
        for session_id in ("a", "b", "c", "d", "e"):
            assert greeting_for(session_id) in persona_for(session_id).greetings

    def test_personas_vary_across_sessions(self):
        chosen = {persona_for(f"session-{i}").id for i in range(50)}

        assert len(chosen) > 1
        assert chosen <= {persona.id for persona in PERSONAS}


class TestResponseGenerator:
    """Test reply text builders."""

    @pytest.fixture
    def responses(self, clock):
        return ResponseGenerator(clock, zone_label="ET")

    def test_ask_day_names_zone(self, responses):
        assert "(Times are in ET.)" in responses.ask_day()

    def test_slot_offer_speaks_first_three(self, responses):
        slots = [make_slot(FRI_10 + timedelta(minutes=30 * i)) for i in range(5)]

        text = responses.slot_offer(slots)

        assert text == f"I can do Fri 10:00 AM, 10:30 AM, or 11:00 AM ET. {Copy.PICK_TIME}"

    def test_day_full(self, responses):
        text = responses.day_full(date(2025, 9, 4), date(2025, 9, 5), [make_slot(FRI_10)])

        assert text.startswith("Sorry, Thu, Sep 4 is fully booked. The next available is Fri, Sep 5:")
        assert text.endswith("I can do Fri 10:00 AM ET.")

    def test_booked_and_already_booked(self, responses):
        when = "Fri, Sep 5, 10:00 AM ET"

        assert responses.booked(when, "jane@acme.com") == (
            "All set, Fri, Sep 5, 10:00 AM ET. Calendar invite sent to jane@acme.com."
        )
        assert responses.booked(when, "jane@acme.com", already=True).startswith("You're already booked")

    def test_pricing_includes_value(self, responses):
        assert responses.pricing() == f"{Copy.PRICING} {Copy.VALUE}"


class TestToneSmoothing:
    """Test optional Claude rewriting."""

    @pytest.fixture
    def claude(self):
        client = AsyncMock()
        client.generate.return_value = MockClaudeResponse(text="  Sure thing, Fri 10:00 AM works.  ")
        return client

    @pytest.mark.asyncio
    async def test_disabled_returns_original(self, clock, claude):
        responses = ResponseGenerator(clock, claude_client=claude, tone_enabled=False)

        assert await responses.tone("Original.", "s1") == "Original."
        claude.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_enabled_without_client_returns_original(self, clock):
        responses = ResponseGenerator(clock, claude_client=None, tone_enabled=True)

        assert await responses.tone("Original.", "s1") == "Original."

    @pytest.mark.asyncio
    async def test_rewrites_in_persona_voice(self, clock, claude):
        responses = ResponseGenerator(clock, claude_client=claude, tone_enabled=True)

        result = await responses.tone("I can do Fri 10:00 AM ET.", "s1")

        assert result == "Sure thing, Fri 10:00 AM works."
        kwargs = claude.generate.call_args.kwargs
        assert persona_for("s1").name in kwargs["system_prompt"]
        assert "I can do Fri 10:00 AM ET." in kwargs["prompt"]

    @pytest.mark.asyncio
    async def test_failure_falls_back(self, clock, claude):
        claude.generate.side_effect = ClaudeClientError("overloaded")
        responses = ResponseGenerator(clock, claude_client=claude, tone_enabled=True)

        assert await responses.tone("Original.", "s1") == "Original."

    @pytest.mark.asyncio
    async def test_blank_rewrite_falls_back(self, clock, claude):
        claude.generate.return_value = MockClaudeResponse(text="   ")
        responses = ResponseGenerator(clock, claude_client=claude, tone_enabled=True)

        assert await responses.tone("Original.", "s1") == "Original."

    @pytest.mark.asyncio
    async def test_close_releases_client(self, clock, claude):
        responses = ResponseGenerator(clock, claude_client=claude, tone_enabled=True)

        await responses.close()

        claude.close.assert_awaited_once()


class TestClaudeClient:
    """Test the Anthropic wrapper with the SDK call mocked out."""

    @pytest.fixture
    def client(self):
        from unittest.mock import MagicMock

        from app.infra.claude import ClaudeClient

        client = ClaudeClient(api_key="test-key", model="claude-test", attempts=2)
        client._client = MagicMock()
        client._client.messages.create = AsyncMock()
        return client

    @staticmethod
    def message(*texts):
        from types import SimpleNamespace

        return SimpleNamespace(
            content=[SimpleNamespace(type="text", text=text) for text in texts],
            stop_reason="end_turn",
        )

    @pytest.mark.asyncio
    async def test_generate_joins_text_blocks(self, client):
        client._client.messages.create.return_value = self.message("Hello ", "there")

        response = await client.generate("Rewrite", system_prompt="You are Alex")

        assert response.text == "Hello there"
        kwargs = client._client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["system"] == "You are Alex"
        assert kwargs["messages"] == [{"role": "user", "content": "Rewrite"}]

    @pytest.mark.asyncio
    async def test_connection_error_retried_then_raised(self, client):
        import httpx
        from anthropic import APIConnectionError

        error = APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
        client._client.messages.create.side_effect = error

        with pytest.raises(ClaudeClientError):
            await client.generate("Rewrite")

        assert client._client.messages.create.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_reply_raises(self, client):
        client._client.messages.create.return_value = self.message()

        with pytest.raises(ClaudeClientError):
            await client.generate("Rewrite")
