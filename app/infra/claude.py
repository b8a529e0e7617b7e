"""
Claude API Client

Async Anthropic wrapper used for tone smoothing: a canned reply goes in,
the same reply in the persona's voice comes out. Tone is optional, so the
client is tuned to give up quickly. Callers catch ClaudeClientError and
keep the original text.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from anthropic import APIConnectionError, APIError, AsyncAnthropic, RateLimitError

from app.config import settings

logger = logging.getLogger(__name__)

# Errors worth one more attempt; everything else fails the rewrite at once
RETRYABLE_ERRORS = (RateLimitError, APIConnectionError)


class ClaudeClientError(Exception):
    """Raised when a rewrite could not be produced."""
    pass


@dataclass
class ClaudeResponse:
    text: str
    model: str
    stop_reason: Optional[str]
    latency_ms: float


class ClaudeClient:
    """Short-timeout Claude client for single-turn rewrites."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 10.0,
        attempts: int = 2,
    ):
        """Initialize Claude client.

        Args:
            api_key: Anthropic API key (defaults to settings)
            model: Model id (defaults to settings.claude_tone_model)
            timeout: Per-request timeout in seconds
            attempts: Tries per rewrite, counting the first
        """
        api_key = api_key or settings.anthropic_api_key
        if not api_key:
            raise ValueError("Anthropic API key is required")

        self._client = AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self._model = model or settings.claude_tone_model
        self._attempts = max(1, attempts)

        logger.info(f"Tone rewriting enabled with model={self._model}")

    @property
    def model(self) -> str:
        return self._model

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 300,
        temperature: float = 0.5,
    ) -> ClaudeResponse:
        """
        Run one single-turn completion.

        Raises:
            ClaudeClientError: On API errors, exhausted retries or an empty reply
        """
        request = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            request["system"] = system_prompt

        started = time.monotonic()
        message = await self._create(request)

        blocks = [block.text for block in message.content if getattr(block, "type", None) == "text"]
        if not blocks:
            raise ClaudeClientError("Claude returned no text")

        return ClaudeResponse(
            text="".join(blocks),
            model=self._model,
            stop_reason=message.stop_reason,
            latency_ms=(time.monotonic() - started) * 1000,
        )

    async def _create(self, request: dict):
        for attempt in range(1, self._attempts + 1):
            try:
                return await self._client.messages.create(**request)
            except RETRYABLE_ERRORS as e:
                if attempt == self._attempts:
                    raise ClaudeClientError(f"Claude unavailable after {attempt} attempts: {e}") from e
                delay = 0.25 * attempt
                logger.warning(f"Claude {type(e).__name__}, retrying in {delay:.2f}s")
                await asyncio.sleep(delay)
            except APIError as e:
                raise ClaudeClientError(f"Claude API error: {e}") from e

    async def close(self) -> None:
        await self._client.close()
