"""
Notification Service

Sends operator email through the SendGrid v3 mail API. Used after a
booking to tell the team who booked and when; failures raise
ExternalCallError and the caller decides whether they matter.
"""

import logging
from typing import Optional

import httpx

from app.config import get_settings
from app.core.errors import ExternalCallError
from app.core.scheduling.ports import NotifyPort

logger = logging.getLogger(__name__)


SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class NotificationService(NotifyPort):
    """Handles email notifications."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        to_email: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        """Initialize notification service.

        Args:
            api_key: SendGrid API key
            from_email: Verified sender address
            to_email: Operator inbox for booking notices
            http_client: Optional shared httpx client
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.from_email = from_email
        self.to_email = to_email
        self.timeout = timeout
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send_email(self, to: str, subject: str, body: str) -> None:
        """Send a plain-text email.

        Args:
            to: Email address
            subject: Email subject
            body: Plain-text body

        Raises:
            ExternalCallError: If SendGrid rejects the message or is unreachable
        """
        client = await self._get_client()
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.from_email},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
        }

        try:
            response = await client.post(
                SENDGRID_SEND_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            raise ExternalCallError(f"SendGrid request failed: {e}") from e

        if response.status_code >= 300:
            raise ExternalCallError(
                f"SendGrid rejected email ({response.status_code}): {response.text[:200]}",
                response.status_code,
            )
        logger.debug(f"Sent email '{subject}'")

    async def notify_booking(self, email: str, when: str, join_link: Optional[str] = None) -> None:
        """Tell the operator a meeting was booked."""
        lines = [f"New booking from {email}", f"When: {when}"]
        if join_link:
            lines.append(f"Meet: {join_link}")
        await self.send_email(self.to_email, f"New booking: {email}", "\n".join(lines))


# Singleton
_service: Optional[NotificationService] = None


def get_notification_service() -> Optional[NotificationService]:
    """Get singleton NotificationService, or None when SendGrid isn't configured."""
    global _service
    settings = get_settings()
    if not settings.notifications_configured:
        return None
    if _service is None:
        _service = NotificationService(
            api_key=settings.sendgrid_api_key,
            from_email=settings.notify_from_email,
            to_email=settings.notify_to_email,
        )
    return _service
