"""
Response Generator for the scheduling assistant.

Builds reply text from fixed copy, speaks slot lists the way a person
would ("I can do Thu 10:00 AM or 10:30 AM ET."), picks a stable persona
per session, and optionally rewrites text in that persona's voice with
Claude. Tone smoothing never changes what is offered; on any failure the
original text is returned.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from app.core.scheduling.clock import TimeZoneClock
from app.core.scheduling.slots import Slot
from app.infra.claude import ClaudeClient, ClaudeClientError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Persona:
    """Voice used for greetings and tone smoothing."""

    id: str
    name: str
    role: str
    style: str
    greetings: tuple[str, ...]


PERSONAS: tuple[Persona, ...] = (
    Persona(
        "alex", "Alex", "sales", "Professional, warm",
        (
            "Hi, Alex with Replicant. I can answer questions or get you set up; what are you trying to solve first?",
            "Hello, Alex here from Replicant. Tell me your goal and I'll point you to the fastest path.",
        ),
    ),
    Persona(
        "riley", "Riley", "sales", "Friendly, energetic",
        (
            "Hey! I'm Riley with Replicant. Ask me anything or tell me how you're thinking of using it.",
            "Hi, Riley here. Want a quick rundown or should we jump straight to setup?",
        ),
    ),
    Persona(
        "jordan", "Jordan", "sales", "Direct, ROI-driven",
        (
            "Hi, Jordan at Replicant. Share your goal and timeline; I'll help you move forward today.",
            "Hello, Jordan from Replicant. I can give you the short version and get you live quickly.",
        ),
    ),
    Persona(
        "sora", "Sora", "support", "Helpful, calm",
        (
            "Hello, Sora from Replicant. Happy to help with questions or setup. Where should we start?",
            "Hi, Sora here. Tell me your use case and I'll show how Replicant handles it.",
        ),
    ),
)


class Copy:
    """Fixed reply text."""

    PRICING = (
        "Launch pricing is $497 setup + $297/mo with a 14-day refund on the first month. "
        "Cancel any time after."
    )
    VALUE = (
        "Most teams find the ROI straightforward: it covers quick responses and "
        "after-hours without hiring."
    )
    CAPABILITY = (
        "We specialize in booking agents, customer support agents, and sales agents. "
        "If you're after appointments and FAQs, our booking + support combo handles intake, "
        "availability, and answers in your voice."
    )
    HUMAN = "Happy to help live. Want a quick phone call, or would you prefer Google Meet?"
    ASK_DAY = "What day works? Or morning, afternoon, or evening? (Times are in {zone}.)"
    ASK_EMAIL = "Great choice, {when}. What's the best email for the invite?"
    INVALID_EMAIL = "That email doesn't look quite right. Could you double-check it?"
    EMAIL_ACK = "Thanks, I'll send the invite to {email}. Which day works for a quick call?"
    PICK_TIME = "What works for you?"
    SLOT_TAKEN = "Sorry, that time is unavailable. Here are some nearby options that day:"
    DAY_FULL = "Sorry, {day} is fully booked. The next available is {next_day}:"
    NOTHING_OPEN = (
        "I'm not seeing openings in the next {days} days. "
        "Want to try a different part of the day?"
    )
    BOOKED = "All set, {when}. Calendar invite sent to {email}."
    ALREADY_BOOKED = "You're already booked for {when}. The invite went to {email}."
    CHECKOUT = "Here's a secure checkout link for you:"
    CHECKOUT_UNAVAILABLE = "Checkout isn't available yet."
    FALLBACK = (
        "Got it. I can walk you through how Replicant handles sales, booking, and support, "
        "or we can jump straight to setup. What would you prefer?"
    )
    BOOK_FAILED = "Couldn't book that time. Mind trying again?"
    BOOK_REJECTED = "Couldn't book that time. Want to try another?"
    FETCH_FAILED = "Couldn't fetch times just now. Mind trying again?"
    REAUTHORIZE = (
        "Our calendar connection needs to be refreshed before I can book. "
        "I've kept your time; please try again shortly."
    )
    NOT_CONNECTED = "Our calendar isn't connected yet, so I can't book times right now."
    PAST_SLOT = "That time has already passed. Here are the next openings:"
    EXACT_UNAVAILABLE = "That exact time isn't open. Here are the closest options that day:"
    SMS_ONE_TEXT = "Reply with the day, time and your email in one text, e.g. \"Fri 10am jane@example.com\"."
    GENERIC_ERROR = "Something went wrong on our side. Mind trying that again?"


def persona_for(session_id: Optional[str]) -> Persona:
    """Stable persona for a session id."""
    digest = hashlib.sha256(f"{session_id or ''}|persona".encode("utf-8")).digest()
    return PERSONAS[int.from_bytes(digest[:4], "big") % len(PERSONAS)]


def greeting_for(session_id: Optional[str]) -> str:
    """Stable first-time greeting for a session id."""
    persona = persona_for(session_id)
    digest = hashlib.sha256(f"{session_id or ''}|greeting".encode("utf-8")).digest()
    return persona.greetings[digest[0] % len(persona.greetings)]


def phrase_for_slots(
    slots: list[Slot], clock: TimeZoneClock, zone_label: str = "ET", per_day: int = 3
) -> str:
    """
    Speak a handful of slots, grouped by day.

    Examples:
        "I can do Thu 10:00 AM or 10:30 AM ET."
        "I can do Thu 10:00 AM; Fri 9:00 AM, 9:30 AM, or 10:00 AM ET."
    """
    if not slots:
        return "I'm not seeing anything there."

    by_day: dict[str, list[str]] = {}
    for slot in slots:
        by_day.setdefault(clock.weekday_label(slot.start), []).append(clock.time_label(slot.start))

    parts = []
    for day, times in by_day.items():
        times = times[:per_day]
        if len(times) == 1:
            parts.append(f"{day} {times[0]}")
        elif len(times) == 2:
            parts.append(f"{day} {times[0]} or {times[1]}")
        else:
            parts.append(f"{day} {', '.join(times[:-1])}, or {times[-1]}")

    if len(parts) == 1:
        return f"I can do {parts[0]} {zone_label}."
    return f"I can do {'; '.join(parts[:-1])}; or {parts[-1]} {zone_label}."


TONE_SYSTEM_PROMPT = """You are {name}, {style}.
Be casual-professional and concise. No menus, no repetition. Keep it to about two short sentences.
Offer a phone call by default; Google Meet only if they ask. Times are in {zone}.
Never add, drop or change any day, time, price or link. Rely only on the provided text."""


class ResponseGenerator:
    """
    Template response generator with optional Claude tone smoothing.

    Tone smoothing is only attempted when enabled and a client is available.
    """

    def __init__(
        self,
        clock: TimeZoneClock,
        zone_label: str = "ET",
        claude_client: Optional[ClaudeClient] = None,
        tone_enabled: bool = False,
    ):
        """Initialize generator.

        Args:
            clock: Clock used to read slot times in the booking zone
            zone_label: Short zone name spoken in replies
            claude_client: Claude client for tone smoothing
            tone_enabled: Rewrite text replies in the persona's voice
        """
        self._clock = clock
        self._zone_label = zone_label
        self._claude_client = claude_client
        self._tone_enabled = tone_enabled and claude_client is not None

    @property
    def zone_label(self) -> str:
        return self._zone_label

    async def close(self) -> None:
        if self._claude_client is not None:
            await self._claude_client.close()

    def greeting(self, session_id: str) -> str:
        return greeting_for(session_id)

    def pricing(self) -> str:
        return f"{Copy.PRICING} {Copy.VALUE}"

    def ask_day(self) -> str:
        return Copy.ASK_DAY.format(zone=self._zone_label)

    def slot_offer(self, enabled: list[Slot]) -> str:
        return f"{phrase_for_slots(enabled[:3], self._clock, self._zone_label)} {Copy.PICK_TIME}"

    def day_full(self, requested: date, next_day: date, next_slots: list[Slot]) -> str:
        """Skip-ahead text naming the full day and the first open day."""
        header = Copy.DAY_FULL.format(
            day=self._clock.date_label(requested),
            next_day=self._clock.date_label(next_day),
        )
        return f"{header} {phrase_for_slots(next_slots[:3], self._clock, self._zone_label)}"

    def nothing_open(self, days: int) -> str:
        return Copy.NOTHING_OPEN.format(days=days)

    def ask_email(self, when: str) -> str:
        return Copy.ASK_EMAIL.format(when=when)

    def booked(self, when: str, email: str, already: bool = False) -> str:
        template = Copy.ALREADY_BOOKED if already else Copy.BOOKED
        return template.format(when=when, email=email)

    async def tone(self, text: str, session_id: str) -> str:
        """Rewrite text in the session persona's voice. Returns text unchanged on failure."""
        if not self._tone_enabled or not text:
            return text

        persona = persona_for(session_id)
        system_prompt = TONE_SYSTEM_PROMPT.format(
            name=persona.name, style=persona.style.lower(), zone=self._zone_label
        )
        try:
            response = await self._claude_client.generate(
                prompt=f"Rewrite this naturally in your style:\n---\n{text}\n---",
                system_prompt=system_prompt,
                max_tokens=200,
                temperature=0.5,
            )
        except ClaudeClientError as e:
            logger.warning(f"Tone smoothing failed, using original text: {e}")
            return text

        rewritten = response.text.strip()
        return rewritten or text
