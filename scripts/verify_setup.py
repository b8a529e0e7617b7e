#!/usr/bin/env python3
"""
Setup Verification Script

Validates booking configuration and external connections before running
the application. Run this after setting up your .env file.

Usage:
    python scripts/verify_setup.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables
from dotenv import load_dotenv
load_dotenv()


def print_header(title: str) -> None:
    """Print section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print(f"{'='*60}")


def print_result(name: str, success: bool, message: str = "") -> None:
    """Print check result."""
    status = "[PASS]" if success else "[FAIL]"
    color = "\033[92m" if success else "\033[91m"
    reset = "\033[0m"
    msg = f" - {message}" if message else ""
    print(f"  {color}{status}{reset} {name}{msg}")


def mask(value: str) -> str:
    return f"{value[:6]}...{value[-4:]}" if len(value) > 12 else "***"


def check_env_file() -> bool:
    """Check if .env file exists."""
    env_path = project_root / ".env"
    exists = env_path.exists()
    if not exists:
        print_result(".env file", False, "File not found. Copy .env.example to .env")
    else:
        print_result(".env file", True, "Found")
    return exists


def check_dependencies() -> bool:
    """Check if required Python packages are installed."""
    required_packages = [
        "fastapi",
        "uvicorn",
        "pydantic",
        "pydantic_settings",
        "redis",
        "httpx",
        "anthropic",
        "multipart",
    ]

    missing = []
    for package in required_packages:
        try:
            __import__(package)
        except ImportError:
            missing.append(package)

    if missing:
        print_result("Python packages", False, f"Missing: {', '.join(missing)}")
        return False
    print_result("Python packages", True, "All required packages installed")
    return True


def check_booking_config():
    """Build the booking configuration exactly as startup does."""
    from app.config import build_booking_config, get_settings
    from app.core.errors import ConfigurationError

    try:
        config = build_booking_config(get_settings())
    except ConfigurationError as e:
        print_result("Booking configuration", False, e.message)
        return None

    print_result("Time zone", True, f"{config.zone_id} ({config.zone_label})")
    rules = config.rules
    if rules.is_fallback:
        print_result("Availability rules", False, "BOOKING_RULES_JSON missing or invalid - using Mon-Fri 09:00-17:00")
    else:
        print_result("Availability rules", True, f"open on {len(rules.open_weekdays)} days, {rules.slot_minutes}-minute slots")
    print_result("Payment link", bool(config.payment_link), config.payment_link or "Not set - pay intent will apologise")
    return config


def check_integrations() -> dict[str, bool]:
    """Report which optional integrations are configured."""
    from app.config import get_settings

    settings = get_settings()
    results = {
        "calendar": settings.calendar_configured,
        "refresh_token": bool(settings.google_refresh_token),
        "airtable": settings.lead_store_configured,
        "sendgrid": settings.notifications_configured,
        "tone": settings.tone_enabled and bool(settings.anthropic_api_key),
    }

    print_result(
        "Google OAuth client",
        results["calendar"],
        f"client id {mask(settings.google_client_id)}" if results["calendar"] else "GOOGLE_CLIENT_ID/SECRET not set",
    )
    print_result(
        "Google refresh token",
        results["refresh_token"],
        "Set" if results["refresh_token"] else "Not set - visit /google/oauth/start",
    )
    print_result("Airtable lead store", results["airtable"], "" if results["airtable"] else "Not configured (optional)")
    print_result("SendGrid notifications", results["sendgrid"], "" if results["sendgrid"] else "Not configured (optional)")
    print_result("Claude tone smoothing", results["tone"], "" if results["tone"] else "Disabled (optional)")
    return results


async def check_calendar(calendar_id: str) -> bool:
    """Authenticated read against the configured calendar."""
    from app.core.errors import AuthError, ExternalCallError, NotConnectedError
    from app.infra.google_calendar import close_google_clients, get_calendar_client

    try:
        info = await get_calendar_client().check_connection(calendar_id)
        print_result("Google Calendar", True, f"{calendar_id} ({info.get('time_zone') or 'zone unknown'})")
        return True
    except NotConnectedError as e:
        print_result("Google Calendar", False, e.message)
    except AuthError:
        print_result("Google Calendar", False, "Credential rejected - re-authorize via /google/oauth/start")
    except ExternalCallError as e:
        print_result("Google Calendar", False, e.message[:60])
    finally:
        await close_google_clients()
    return False


async def check_redis() -> bool:
    """Verify Redis connection."""
    from app.infra.redis import RedisClient, check_redis_health

    healthy = await check_redis_health()
    await RedisClient.close()
    if healthy:
        print_result("Redis", True, "Connection successful")
    else:
        print_result("Redis", False, "Connection failed (rate limiting disabled)")
    return healthy


async def main():
    """Run all verification checks."""
    print("\n" + "="*60)
    print(" Scheduling Assistant - Setup Verification")
    print("="*60)

    critical_failed = False

    print_header("Environment File")
    check_env_file()

    print_header("Python Dependencies")
    if not check_dependencies():
        print("\n  Install with: pip install -e .[test]\n")
        return 1

    print_header("Booking Configuration")
    config = check_booking_config()
    if config is None:
        critical_failed = True

    print_header("Integrations")
    integrations = check_integrations()

    print_header("Service Connections")
    if config is not None and integrations["calendar"] and integrations["refresh_token"]:
        if not await check_calendar(config.calendar_id):
            critical_failed = True
    else:
        print_result("Google Calendar", False, "Skipped - not connected")
        critical_failed = True

    # Redis failure is non-critical (rate limiting fails open)
    await check_redis()

    print_header("Summary")
    if critical_failed:
        print("\n  \033[91mCRITICAL: Booking will not work until the issues above are fixed.\033[0m")
        print()
        return 1

    print("\n  \033[92mAll checks passed!\033[0m")
    print("  You can start the application with:")
    print("    uvicorn app.main:app --reload")
    print()
    return 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
