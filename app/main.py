"""
Scheduling Assistant API

FastAPI entry point: wires the routers, middleware and error handlers, and
owns startup validation of the booking configuration.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.api.middleware.rate_limit import RateLimitMiddleware
from app.api.routes import chat, google, health, schedule, slots, sms
from app.core.errors import ConfigurationError, NotConnectedError
from app.core.scheduling.engine import get_scheduling_engine
from app.infra.airtable import get_lead_store
from app.infra.google_calendar import close_google_clients
from app.infra.notifications import get_notification_service
from app.infra.redis import RedisClient

API_VERSION = "1.0.0"

# Third-party loggers that are noisy at INFO
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "anthropic")


def setup_logging() -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Validate configuration, then hold shared clients for the process lifetime.

    An unknown zone or invalid limits abort startup. A missing calendar
    credential does not: the chat still answers, and booking replies
    explain that the calendar isn't connected.
    """
    setup_logging()
    logger.info(f"Starting {settings.app_name} ({settings.app_env})")
    health.set_start_time()

    try:
        engine = get_scheduling_engine()
    except ConfigurationError as e:
        logger.critical(f"Invalid booking configuration: {e}")
        raise

    config = engine.config
    logger.info(
        f"Booking in {config.zone_id}: {config.slot_minutes}-minute slots, "
        f"open {sorted(config.rules.open_weekdays)} (Sun=0)"
        f"{', default hours' if config.rules.is_fallback else ''}; "
        f"busy fallback={config.busy_fallback}"
    )
    if engine.coordinator is None:
        logger.warning("Booking disabled: GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET not set")

    if await RedisClient.get_client() is None:
        logger.warning("Redis unavailable, rate limiting is off until it returns")

    yield

    logger.info("Shutting down...")
    await RedisClient.close()
    await close_google_clients()
    await engine.close()
    for client in (get_lead_store(), get_notification_service()):
        if client is not None:
            await client.close()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Scheduling Assistant API",
    description="""
    Conversational meeting booking against a live Google Calendar.

    ## Channels
    - `/chat` web widget turns (slot cards, email capture, checkout link)
    - `/sms/webhook` Twilio inbound texts, answered in TwiML
    - `/slots` and `/schedule` for clients that render their own picker

    ## Sessions
    Conversation state is held by the client: send back the `session`
    snapshot from each `/chat` response with the next turn.
    """,
    version=API_VERSION,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)

# Added last runs first: rate limiting sees the request before CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RateLimitMiddleware)


def _error(status_code: int, error: str, detail) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "detail": detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc.errors()}")
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation error", exc.errors())


@app.exception_handler(ConfigurationError)
@app.exception_handler(NotConnectedError)
async def not_configured_handler(request: Request, exc: Exception) -> JSONResponse:
    """Deployment gaps (bad config, calendar never connected) are 503s, not 500s."""
    logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Service not configured", str(exc))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
    detail = str(exc) if settings.is_development else "Internal server error"
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", detail)


@app.middleware("http")
async def request_timing_middleware(request: Request, call_next):
    """Debug-level request timing."""
    started = time.perf_counter()
    try:
        return await call_next(request)
    finally:
        if settings.debug:
            logger.debug(f"{request.method} {request.url.path} took {time.perf_counter() - started:.3f}s")


app.include_router(health.router)
app.include_router(chat.router)
app.include_router(slots.router)
app.include_router(schedule.router)
app.include_router(sms.router)
app.include_router(google.router)


@app.get("/", tags=["Root"])
async def root() -> dict:
    return {
        "name": settings.app_name,
        "version": API_VERSION,
        "status": "running",
        "environment": settings.app_env,
        "booking_zone": settings.booking_tz,
        "docs": "/docs" if settings.is_development else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
