"""
Tests for the GoHighLevel client and contact payloads.
"""
import json

import httpx
import pytest

from app.core.exceptions import CRMConfigurationError, CRMError, DuplicateContactError
from app.schemas.submission import LeadCategory, LeadSubmission
from app.services.crm_client import build_contact_payload


class TestContactPayload:

    def test_mortgage_tags(self):
        payload = build_contact_payload(LeadCategory.MORTGAGE, LeadSubmission(firstName="Ana", homePrice="350000"))
        assert payload.tags == ["mortgage-lead", "pre-approval-request", "high-intent-buyer"]
        assert payload.custom_fields["home_price"] == "350000"
        assert payload.source == "Mortgage Calculator - Property Website"

    def test_buyer_tags_include_city(self):
        payload = build_contact_payload(LeadCategory.BUYER, LeadSubmission(city="Tampa", propertyId="MLS-9"))
        assert payload.tags == ["buyer-lead", "property-interest", "Tampa"]
        assert payload.custom_fields["property_id"] == "MLS-9"

    def test_agent_defaults(self):
        payload = build_contact_payload(LeadCategory.AGENT, LeadSubmission())
        assert payload.source == "businessconector.com"
        assert payload.custom_fields["interested_in"] == "Starter"


class TestGoHighLevelClient:

    @pytest.mark.asyncio
    async def test_create_contact_sends_location_and_auth(self, make_crm):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"contact": {"id": "ghl-1"}})

        crm = make_crm(handler)
        contact = await crm.create_contact(build_contact_payload(LeadCategory.AGENT, LeadSubmission(firstName="Mike")))

        assert contact == {"id": "ghl-1"}
        body = json.loads(seen[0].content)
        assert body["locationId"] == "loc-1"
        assert body["firstName"] == "Mike"
        assert seen[0].headers["Authorization"] == "Bearer ghl-key"

    @pytest.mark.asyncio
    async def test_duplicate_is_its_own_error(self, make_crm):
        crm = make_crm(lambda request: httpx.Response(422, json={"message": "duplicate"}))
        with pytest.raises(DuplicateContactError) as exc:
            await crm.create_contact(build_contact_payload(LeadCategory.AGENT, LeadSubmission()))
        assert exc.value.status_code == 422

    @pytest.mark.asyncio
    async def test_http_error_carries_status(self, make_crm):
        crm = make_crm(lambda request: httpx.Response(503, text="maintenance"))
        with pytest.raises(CRMError) as exc:
            await crm.create_contact(build_contact_payload(LeadCategory.AGENT, LeadSubmission()))
        assert exc.value.status_code == 503

    @pytest.mark.asyncio
    async def test_transport_error_has_no_status(self, make_crm):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(CRMError) as exc:
            await make_crm(handler).create_contact(build_contact_payload(LeadCategory.AGENT, LeadSubmission()))
        assert exc.value.status_code is None

    @pytest.mark.asyncio
    async def test_unconfigured_client_never_calls_out(self, make_crm):
        calls = []
        crm = make_crm(lambda request: calls.append(request) or httpx.Response(200), location_id="")
        assert crm.configured is False
        with pytest.raises(CRMConfigurationError):
            await crm.find_duplicate("jane@x.com")
        assert calls == []

    @pytest.mark.asyncio
    async def test_find_duplicate(self, make_crm):
        def handler(request):
            assert request.url.params["email"] == "jane@x.com"
            return httpx.Response(200, json={"contact": {"id": "ghl-9"}})

        crm = make_crm(handler)
        assert await crm.find_duplicate("jane@x.com") == {"id": "ghl-9"}
        assert await crm.find_duplicate(None) is None

    @pytest.mark.asyncio
    async def test_find_duplicate_not_found(self, make_crm):
        crm = make_crm(lambda request: httpx.Response(404))
        assert await crm.find_duplicate("nobody@x.com") is None

    @pytest.mark.asyncio
    async def test_add_to_pipeline(self, make_crm):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"opportunity": {"id": "opp-1"}})

        await make_crm(handler).add_to_pipeline("ghl-1", "pipe", "stage", 597, "Agent Client Lead")
        assert seen[0]["pipelineStageId"] == "stage"
        assert seen[0]["monetaryValue"] == 597
        assert seen[0]["status"] == "open"
