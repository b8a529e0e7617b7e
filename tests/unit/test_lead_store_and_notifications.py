"""Tests for the Airtable lead store and SendGrid notifications."""

import json

import httpx
import pytest

from app.core.errors import ExternalCallError
from app.infra.airtable import AirtableLeadStore
from app.infra.notifications import NotificationService
from tests.conftest import utc


def recording_client(responder):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return responder(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


class TestAirtableLeadStore:
    """Test lead create-or-update."""

    @pytest.mark.asyncio
    async def test_creates_new_lead(self):
        def responder(request):
            if request.method == "GET":
                return httpx.Response(200, json={"records": []})
            return httpx.Response(200, json={"records": [{"id": "rec1"}]})

        http_client, requests = recording_client(responder)
        store = AirtableLeadStore("tok", "app123", "Leads", http_client=http_client)

        await store.upsert_lead("Jane@Acme.com", "Booked", utc(2025, 9, 5, 14, 0))

        lookup, create = requests
        assert lookup.url.params["filterByFormula"] == "LOWER({Email}) = 'jane@acme.com'"
        assert create.method == "POST"
        assert str(create.url) == "https://api.airtable.com/v0/app123/Leads"
        assert json.loads(create.content) == {
            "records": [
                {
                    "fields": {
                        "Email": "jane@acme.com",
                        "Status": "Booked",
                        "Appointment Time": "2025-09-05T14:00:00Z",
                    }
                }
            ],
            "typecast": True,
        }
        assert create.headers["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_updates_existing_lead(self):
        def responder(request):
            if request.method == "GET":
                return httpx.Response(200, json={"records": [{"id": "rec9"}]})
            return httpx.Response(200, json={"records": [{"id": "rec9"}]})

        http_client, requests = recording_client(responder)
        store = AirtableLeadStore("tok", "app123", http_client=http_client)

        await store.upsert_lead("jane@acme.com", "Booked")

        update = requests[1]
        assert update.method == "PATCH"
        body = json.loads(update.content)
        assert body["records"][0]["id"] == "rec9"
        assert "Appointment Time" not in body["records"][0]["fields"]

    @pytest.mark.asyncio
    async def test_quotes_in_email_are_escaped(self):
        http_client, requests = recording_client(lambda request: httpx.Response(200, json={"records": []}))
        store = AirtableLeadStore("tok", "app123", http_client=http_client)

        await store.find_lead_id("o'brien@acme.com")

        assert requests[0].url.params["filterByFormula"] == "LOWER({Email}) = 'o\\'brien@acme.com'"

    @pytest.mark.asyncio
    async def test_error_raises(self):
        http_client, _ = recording_client(lambda request: httpx.Response(422, text="INVALID_VALUE"))
        store = AirtableLeadStore("tok", "app123", http_client=http_client)

        with pytest.raises(ExternalCallError) as exc_info:
            await store.upsert_lead("jane@acme.com", "Booked")

        assert exc_info.value.status_code == 422


class TestNotificationService:
    """Test operator emails."""

    @pytest.mark.asyncio
    async def test_notify_booking(self):
        http_client, requests = recording_client(lambda request: httpx.Response(202))
        service = NotificationService("key", "bot@acme.com", "team@acme.com", http_client=http_client)

        await service.notify_booking("jane@acme.com", "Fri, Sep 5, 10:00 AM ET", "https://meet.google.com/x")

        body = json.loads(requests[0].content)
        assert body["personalizations"] == [{"to": [{"email": "team@acme.com"}]}]
        assert body["from"] == {"email": "bot@acme.com"}
        assert body["subject"] == "New booking: jane@acme.com"
        assert body["content"][0]["value"] == (
            "New booking from jane@acme.com\nWhen: Fri, Sep 5, 10:00 AM ET\nMeet: https://meet.google.com/x"
        )

    @pytest.mark.asyncio
    async def test_rejected_raises(self):
        http_client, _ = recording_client(lambda request: httpx.Response(401, text="bad key"))
        service = NotificationService("key", "bot@acme.com", "team@acme.com", http_client=http_client)

        with pytest.raises(ExternalCallError):
            await service.send_email("team@acme.com", "hi", "body")
