"""
Google Calendar Connection Endpoints

One-time operator flow that provisions the refresh credential:

    GET /google/oauth/start     -> redirect to Google consent
    GET /google/oauth/callback  -> exchange code, show refresh token
    GET /google/check           -> prove the stored credential works

The `state` parameter is an HMAC-signed timestamp so a callback can only
complete a flow this server started.
"""

import hashlib
import hmac
import logging
import secrets
import time
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import HTMLResponse, RedirectResponse

from app.config import get_settings
from app.core.errors import AuthError, ExternalCallError, NotConnectedError
from app.infra.google_calendar import get_calendar_client, get_google_oauth

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google", tags=["Google"])

STATE_MAX_AGE_SECONDS = 600


def _sign(payload: str) -> str:
    key = get_settings().secret_key.encode("utf-8")
    return hmac.new(key, payload.encode("utf-8"), hashlib.sha256).hexdigest()


def make_state(now: Optional[float] = None) -> str:
    """Signed `{issued_at}.{nonce}.{signature}` value."""
    issued_at = int(now if now is not None else time.time())
    payload = f"{issued_at}.{secrets.token_urlsafe(12)}"
    return f"{payload}.{_sign(payload)}"


def verify_state(state: str, now: Optional[float] = None) -> bool:
    """True if the state was signed here and is still fresh."""
    try:
        issued_at, nonce, signature = state.split(".")
        issued = int(issued_at)
    except ValueError:
        return False

    if not hmac.compare_digest(_sign(f"{issued_at}.{nonce}"), signature):
        return False

    current = now if now is not None else time.time()
    return 0 <= current - issued <= STATE_MAX_AGE_SECONDS


def _require_client_credentials() -> None:
    if not get_settings().calendar_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are not set",
        )


@router.get("/oauth/start", summary="Start Google Calendar connection")
async def oauth_start(force: bool = Query(default=False)) -> RedirectResponse:
    """Redirect the operator to Google's consent screen."""
    _require_client_credentials()
    url = get_google_oauth().authorization_url(make_state(), force_consent=force)
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/oauth/callback", response_class=HTMLResponse, summary="Finish Google Calendar connection")
async def oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
) -> HTMLResponse:
    """Exchange the authorization code and show the refresh token to store."""
    _require_client_credentials()

    if error:
        logger.warning(f"Google consent denied: {error}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Consent failed: {error}")
    if not code or not state or not verify_state(state):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired OAuth state")

    oauth = get_google_oauth()
    try:
        tokens = await oauth.exchange_code(code)
    except ExternalCallError as e:
        logger.error(f"Google code exchange failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)

    refresh_token = tokens.get("refresh_token")
    if not refresh_token:
        return HTMLResponse(
            "<h3>Connected, but Google did not return a refresh token.</h3>"
            "<p>Revoke access and retry with <code>/google/oauth/start?force=true</code>.</p>"
        )

    # Usable immediately; persisted once the operator sets the env var.
    oauth.refresh_token = refresh_token
    logger.info("Google Calendar connected")
    return HTMLResponse(
        "<h3>Google Calendar connected.</h3>"
        "<p>Set this in your environment so it survives restarts:</p>"
        f"<pre>GOOGLE_REFRESH_TOKEN={refresh_token}</pre>"
    )


@router.get("/check", summary="Check Google Calendar connection")
async def check() -> dict:
    """Authenticated read against the configured calendar."""
    _require_client_credentials()
    settings = get_settings()
    try:
        return await get_calendar_client().check_connection(settings.google_calendar_id)
    except NotConnectedError as e:
        return {"ok": False, "error": "not_connected", "detail": e.message}
    except AuthError as e:
        return {"ok": False, "error": "reauthorize", "detail": e.message}
    except ExternalCallError as e:
        return {"ok": False, "error": "unreachable", "detail": e.message}
