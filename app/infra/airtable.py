"""
Airtable Lead Store

Create-or-update of a lead row keyed by email, over the Airtable REST API:
look the row up with a case-insensitive formula, then PATCH it or POST a
new one. Values are sent with `typecast` so single-select options are
created on the fly.
"""

import logging
from datetime import datetime
from typing import Optional
from urllib.parse import quote

import httpx

from app.config import get_settings
from app.core.errors import ExternalCallError
from app.core.scheduling.clock import to_iso_z
from app.core.scheduling.ports import LeadStorePort

logger = logging.getLogger(__name__)


AIRTABLE_API_BASE_URL = "https://api.airtable.com/v0"


class AirtableLeadStore(LeadStorePort):
    """Leads table in one Airtable base."""

    def __init__(
        self,
        token: str,
        base_id: str,
        table_name: str = "Leads",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.token = token
        self.base_id = base_id
        self.table_name = table_name
        self.timeout = timeout
        self._client = http_client

    @property
    def _table_url(self) -> str:
        return f"{AIRTABLE_API_BASE_URL}/{self.base_id}/{quote(self.table_name, safe='')}"

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

    async def _request(self, method: str, url: str, **kwargs) -> dict:
        client = await self._get_client()
        try:
            response = await client.request(
                method,
                url,
                headers={"Authorization": f"Bearer {self.token}"},
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise ExternalCallError(f"Airtable request failed: {e}") from e

        if response.status_code >= 300:
            raise ExternalCallError(
                f"Airtable request failed ({response.status_code}): {response.text[:200]}",
                response.status_code,
            )
        return response.json()

    async def find_lead_id(self, email: str) -> Optional[str]:
        """Record id of the lead with this email, if any."""
        safe_email = email.strip().lower().replace("'", "\\'")
        data = await self._request(
            "GET",
            self._table_url,
            params={
                "filterByFormula": f"LOWER({{Email}}) = '{safe_email}'",
                "maxRecords": 1,
            },
        )
        records = data.get("records", [])
        return records[0]["id"] if records else None

    async def upsert_lead(
        self, email: str, status: str, appointment_time: Optional[datetime] = None
    ) -> None:
        """Create or update the lead keyed by email.

        Raises:
            ExternalCallError: If Airtable is unreachable or rejects the write
        """
        fields = {"Email": email.strip().lower(), "Status": status}
        if appointment_time is not None:
            fields["Appointment Time"] = to_iso_z(appointment_time)

        record_id = await self.find_lead_id(email)
        if record_id:
            await self._request(
                "PATCH",
                self._table_url,
                json={"records": [{"id": record_id, "fields": fields}], "typecast": True},
            )
            logger.debug(f"Updated lead {record_id} -> {status}")
        else:
            await self._request(
                "POST",
                self._table_url,
                json={"records": [{"fields": fields}], "typecast": True},
            )
            logger.debug(f"Created lead with status {status}")


# Singleton
_store: Optional[AirtableLeadStore] = None


def get_lead_store() -> Optional[AirtableLeadStore]:
    """Get singleton AirtableLeadStore, or None when Airtable isn't configured."""
    global _store
    settings = get_settings()
    if not settings.lead_store_configured:
        return None
    if _store is None:
        _store = AirtableLeadStore(
            token=settings.airtable_token,
            base_id=settings.airtable_base_id,
            table_name=settings.airtable_table_name,
        )
    return _store
