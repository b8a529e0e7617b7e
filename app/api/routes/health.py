"""
Health Probes

    GET /health        process is up, with the booking zone it serves
    GET /health/ready  calendar credential present (required), Redis (optional)
    GET /health/live   uptime since startup

Readiness only looks at configuration and a Redis ping; it never calls
Google, so probes don't spend calendar quota. Use /google/check for an
authenticated round trip.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.config import settings
from app.infra.google_calendar import get_google_oauth
from app.infra.redis import check_redis_health

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

_started_monotonic: Optional[float] = None


def set_start_time() -> None:
    """Mark process start (lifespan hook)."""
    global _started_monotonic
    _started_monotonic = time.monotonic()


def get_uptime_seconds() -> Optional[float]:
    if _started_monotonic is None:
        return None
    return round(time.monotonic() - _started_monotonic, 3)


def calendar_status() -> str:
    """ok, not_configured (no OAuth client) or not_connected (no refresh token)."""
    if not settings.calendar_configured:
        return "not_configured"
    if not get_google_oauth().is_connected:
        return "not_connected"
    return "ok"


class HealthResponse(BaseModel):
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = "1.0.0"
    environment: str
    booking_zone: str


class ReadyResponse(BaseModel):
    """Readiness with per-dependency status."""

    status: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    checks: dict[str, str]


class LiveResponse(BaseModel):
    status: str = "alive"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    uptime_seconds: Optional[float] = None


@router.get("", response_model=HealthResponse, summary="Basic health check")
async def health() -> HealthResponse:
    """Always 200 while the process serves requests."""
    return HealthResponse(environment=settings.app_env, booking_zone=settings.booking_tz)


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness probe",
    responses={503: {"description": "Calendar not configured or not connected"}},
)
async def ready():
    """
    Ready means bookings can be written.

    Redis only backs rate limiting, which fails open, so a Redis outage is
    reported as degraded without failing the probe.
    """
    calendar = calendar_status()
    checks = {
        "calendar": calendar,
        "redis": "ok" if await check_redis_health() else "degraded",
    }

    if calendar != "ok":
        logger.warning(f"Readiness check failed: calendar {calendar}")
        body = ReadyResponse(status="not_ready", checks=checks)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=body.model_dump(mode="json"),
        )

    return ReadyResponse(status="ready", checks=checks)


@router.get("/live", response_model=LiveResponse, summary="Liveness probe")
async def live() -> LiveResponse:
    return LiveResponse(uptime_seconds=get_uptime_seconds())
