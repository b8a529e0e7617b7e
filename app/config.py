"""
Configuration Management

Uses Pydantic BaseSettings to load configuration from environment variables.
All settings can be overridden via .env file or environment variables.

Process settings are read once. The scheduling core never reads them
directly: `build_booking_config()` turns them into an immutable
`BookingConfig` that is passed into each component, so tests can supply
alternate zones and rules without touching the environment.

Environment Variables:
    BOOKING_TZ: IANA zone for availability and labels (default: America/New_York)
    BOOKING_RULES_JSON: Weekly availability template (JSON)
    BOOKING_LEAD_HOURS: Minimum gap between now and the first offered slot
    GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET / GOOGLE_REFRESH_TOKEN: Calendar OAuth
    REDIS_URL: Redis connection string (rate limiting)
    APP_ENV: Environment name (development/staging/production)
    DEBUG: Enable debug mode (default: False)
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.errors import ConfigurationError
from app.core.scheduling.clock import load_zone
from app.core.scheduling.rules import AvailabilityRules


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "scheduling-assistant"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    cors_origins: str = "http://localhost:3000"
    """Comma-separated list of allowed CORS origins."""

    secret_key: str = "dev-secret-key-change-in-production"
    """Signs the OAuth `state` parameter. Must be changed in production."""

    # Redis / rate limiting
    redis_url: str = "redis://localhost:6379/0"
    rate_limit_requests: int = 60
    rate_limit_window: int = 60

    # Availability
    booking_tz: str = "America/New_York"
    """IANA zone every wall-clock time is expressed in."""

    booking_tz_label: str = "ET"
    """Short zone label spoken to users ("10:00 AM ET")."""

    booking_rules_json: str = ""
    """Weekly template, e.g. {"mon": [["09:00", "17:00"]], "slotMinutes": 30}.

    Empty or malformed falls back to Mon-Fri 09:00-17:00 (logged).
    """

    booking_lead_hours: float = 1.0
    booking_horizon_days: int = 7
    booking_skip_ahead_days: int = 6
    booking_max_slots: int = 40
    booking_page_size: int = 5

    busy_fallback: Literal["unavailable", "assume_free"] = "unavailable"
    """What a failed free/busy query means for that day's slots."""

    # Google Calendar
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = "http://localhost:8000/google/oauth/callback"
    google_refresh_token: str = ""
    google_calendar_id: str = "primary"
    calendar_timeout: float = 15.0

    meeting_summary: str = "Intro Call"
    meeting_description: str = "Auto-booked from chat."

    # Checkout
    stripe_payment_link: str = ""

    # Lead store (Airtable)
    airtable_token: str = ""
    airtable_base_id: str = ""
    airtable_table_name: str = "Leads"

    # Notifications (SendGrid)
    sendgrid_api_key: str = ""
    notify_from_email: str = ""
    notify_to_email: str = ""

    side_effect_timeout: float = 5.0
    """Seconds to wait on best-effort CRM/notification calls after a booking."""

    # Tone smoothing (Claude)
    tone_enabled: bool = False
    anthropic_api_key: str = ""
    claude_tone_model: str = "claude-3-5-haiku-20241022"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def cors_origins_list(self) -> list[str]:
        """Split cors_origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def calendar_configured(self) -> bool:
        """OAuth client credentials are present (refresh token may not be)."""
        return bool(self.google_client_id and self.google_client_secret)

    @property
    def lead_store_configured(self) -> bool:
        return bool(self.airtable_token and self.airtable_base_id)

    @property
    def notifications_configured(self) -> bool:
        return bool(self.sendgrid_api_key and self.notify_from_email and self.notify_to_email)


@dataclass(frozen=True)
class BookingConfig:
    """Immutable scheduling configuration handed to each component."""

    zone_id: str
    rules: AvailabilityRules
    zone_label: str = "ET"
    lead_time_hours: float = 1.0
    horizon_days: int = 7
    skip_ahead_days: int = 6
    max_slots: int = 40
    page_size: int = 5
    busy_fallback: str = "unavailable"
    calendar_id: str = "primary"
    meeting_summary: str = "Intro Call"
    meeting_description: str = "Auto-booked from chat."
    payment_link: Optional[str] = None
    side_effect_timeout: float = 5.0

    @property
    def slot_minutes(self) -> int:
        return self.rules.slot_minutes


def build_booking_config(settings: Settings) -> BookingConfig:
    """Build the scheduling configuration from process settings.

    Raises:
        ConfigurationError: If the zone id is unknown or numeric limits are invalid
    """
    load_zone(settings.booking_tz)

    if settings.booking_horizon_days < 1:
        raise ConfigurationError("BOOKING_HORIZON_DAYS must be at least 1")
    if settings.booking_page_size < 1 or settings.booking_max_slots < 1:
        raise ConfigurationError("BOOKING_PAGE_SIZE and BOOKING_MAX_SLOTS must be positive")
    if settings.booking_lead_hours < 0:
        raise ConfigurationError("BOOKING_LEAD_HOURS cannot be negative")

    return BookingConfig(
        zone_id=settings.booking_tz,
        rules=AvailabilityRules.from_json(settings.booking_rules_json),
        zone_label=settings.booking_tz_label,
        lead_time_hours=settings.booking_lead_hours,
        horizon_days=settings.booking_horizon_days,
        skip_ahead_days=settings.booking_skip_ahead_days,
        max_slots=settings.booking_max_slots,
        page_size=settings.booking_page_size,
        busy_fallback=settings.busy_fallback,
        calendar_id=settings.google_calendar_id,
        meeting_summary=settings.meeting_summary,
        meeting_description=settings.meeting_description,
        payment_link=settings.stripe_payment_link or None,
        side_effect_timeout=settings.side_effect_timeout,
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Cached settings instance
    """
    return Settings()


# Module-level settings instance for easy imports
settings = get_settings()
