"""
Tests for lead capture, replay, lifecycle transitions and marketplace purchase.
"""
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from app.core.config import RoutingConfig
from app.core.exceptions import InvalidTransitionError
from app.schemas.submission import LeadCategory, LeadSubmission, MortgageLeadRequest
from app.services.lead_services import LeadServices, _replay_key, _timeline_months

JANE = LeadSubmission(
    firstName="Jane",
    lastName="Doe",
    email="jane@x.com",
    phone="5551234567",
    propertyAddress="123 Main St",
    budget="400000-500000",
)


def contact_created(request):
    return httpx.Response(200, json={"contact": {"id": "ghl-123"}})


class TestHelpers:

    @pytest.mark.parametrize(
        "timeline, months",
        [("ASAP", 1), ("Immediately", 1), ("3-6 months", 3), ("1 year", 12), ("someday", None), (None, None)],
    )
    def test_timeline_months(self, timeline, months):
        assert _timeline_months(timeline) == months

    def test_replay_key_ignores_email_case(self):
        upper = JANE.model_copy(update={"email": "Jane@X.com"})
        assert _replay_key(upper, "BUYER") == _replay_key(JANE, "BUYER")
        assert _replay_key(JANE, "BUYER").startswith("lead:submission:BUYER:")
        assert _replay_key(LeadSubmission(), "BUYER") is None

    def test_replay_key_differs_per_inquiry(self):
        other = JANE.model_copy(update={"property_address": "99 Oak Ave"})
        assert _replay_key(other, "BUYER") != _replay_key(JANE, "BUYER")
        assert _replay_key(JANE, "AGENT") != _replay_key(JANE, "BUYER")


class TestCaptureLead:

    @pytest.mark.asyncio
    async def test_jane_doe_end_to_end(self, mock_db, mock_redis, make_crm, make_router, lead_store):
        router = make_router(RoutingConfig(), crm=make_crm(contact_created))

        response = await LeadServices.capture_lead(JANE, mock_db, mock_redis, router)

        assert response.category == LeadCategory.BUYER
        assert response.routing.success is True
        assert response.routing.pipeline == "Contact Created (Pipeline Pending Setup)"
        assert response.routing.contact_id == "ghl-123"
        assert response.routing.lead_id == lead_store.saved.lead_id
        assert response.needs_review is False
        assert 0 <= response.quality_score <= 100
        assert set(response.score_breakdown) == {"view", "engagement", "conversion", "market"}

        record = lead_store.create_lead.await_args.args[1]
        assert record["delivery_status"] == "delivered"
        assert record["crm_contact_id"] == "ghl-123"
        assert record["crm_pipeline_id"] is None
        mock_redis.set.assert_awaited_once()
        assert mock_redis.set.await_args.args[0] == _replay_key(JANE, "BUYER")

    @pytest.mark.asyncio
    async def test_replay_returns_cached_response(self, mock_db, mock_redis, make_crm, make_router, lead_store):
        calls = []

        def counting(request):
            calls.append(request)
            return contact_created(request)

        router = make_router(RoutingConfig(), crm=make_crm(counting))
        first = await LeadServices.capture_lead(JANE, mock_db, mock_redis, router)
        mock_redis.get.return_value = first.model_dump_json()

        second = await LeadServices.capture_lead(JANE, mock_db, mock_redis, router)

        assert second.replayed is True
        assert second.routing.contact_id == first.routing.contact_id
        assert len(calls) == 1
        lead_store.create_lead.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fallback_lead_is_written_once(self, mock_db, mock_redis, make_crm, make_router, lead_store):
        def down(request):
            raise httpx.ConnectError("refused", request=request)

        router = make_router(RoutingConfig(), crm=make_crm(down))
        response = await LeadServices.capture_lead(JANE, mock_db, mock_redis, router)

        assert response.routing.fallback is True
        lead_store.create_lead.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_second_inquiry_from_same_email_is_routed(self, mock_db, make_crm, make_router, lead_store):
        cache = {}
        redis = SimpleNamespace(
            get=AsyncMock(side_effect=lambda key: cache.get(key)),
            set=AsyncMock(side_effect=lambda key, value, ex=None: cache.__setitem__(key, value)),
        )

        def down(request):
            raise httpx.ConnectError("refused", request=request)

        router = make_router(RoutingConfig(), crm=make_crm(down))
        first = JANE.model_copy(update={"property_address": "1 Main St"})
        second = JANE.model_copy(update={"property_address": "99 Oak Ave"})

        one = await LeadServices.capture_lead(first, mock_db, redis, router)
        two = await LeadServices.capture_lead(second, mock_db, redis, router)
        again = await LeadServices.capture_lead(second, mock_db, redis, router)

        assert one.replayed is False
        assert two.replayed is False
        assert two.routing.fallback is True
        assert again.replayed is True
        assert lead_store.create_lead.await_count == 2
        addresses = [c.args[1]["details"]["property_address"] for c in lead_store.create_lead.await_args_list]
        assert addresses == ["1 Main St", "99 Oak Ave"]

    @pytest.mark.asyncio
    async def test_failed_local_copy_rolls_back_before_property_event(
        self, mock_db, mock_redis, make_crm, make_router, lead_store
    ):
        lead_store.create_lead.side_effect = OperationalError("INSERT INTO leads", {}, Exception("db down"))
        router = make_router(RoutingConfig(), crm=make_crm(contact_created))
        submission = JANE.model_copy(update={"property_id": "MLS-42"})

        with patch("app.services.lead_services.property_crud.get_by_property_id", new_callable=AsyncMock, return_value=None), \
                patch("app.services.lead_services.PropertyMetricsService.record_event", new_callable=AsyncMock) as record_event:
            response = await LeadServices.capture_lead(submission, mock_db, mock_redis, router)

        assert response.routing.success is True
        assert response.routing.contact_id == "ghl-123"
        assert response.routing.lead_id is None
        mock_db.rollback.assert_awaited_once()
        record_event.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_property_lead_counts_an_event(self, mock_db, mock_redis, make_crm, make_router, lead_store):
        router = make_router(RoutingConfig(), crm=make_crm(contact_created))
        submission = LeadSubmission(email="sam@gulfmail.com", propertyId="MLS-42", engagementSeconds=200)
        metrics = SimpleNamespace(lead_score=80.0, city="Tampa", state="FL")

        with patch("app.services.lead_services.property_crud.get_by_property_id", new_callable=AsyncMock, return_value=metrics), \
                patch("app.services.lead_services.market_crud.get_active", new_callable=AsyncMock,
                      return_value=SimpleNamespace(market_heat="hot")), \
                patch("app.services.lead_services.PropertyMetricsService.record_event", new_callable=AsyncMock) as record_event:
            response = await LeadServices.capture_lead(submission, mock_db, mock_redis, router)

        assert response.score_breakdown["view"] == 80.0
        assert response.score_breakdown["engagement"] == 100.0
        assert response.score_breakdown["market"] == 80.0
        record_event.assert_awaited_once()
        assert record_event.await_args.args[1:3] == ("MLS-42", "lead")

    @pytest.mark.asyncio
    async def test_mortgage_request(self, mock_db, mock_redis, make_crm, make_router, lead_store):
        router = make_router(RoutingConfig(), crm=make_crm(contact_created))
        request = MortgageLeadRequest(
            name="Ana Lopez", email="ana@floridamail.com", phone="4075550000",
            homePrice="350000", downPayment="70000", interestRate="6.5", loanTerm="30", monthlyPayment="1770",
        )

        response = await LeadServices.capture_mortgage_lead(request, mock_db, mock_redis, router)

        assert response.category == LeadCategory.MORTGAGE
        assert response.routing.pipeline == "Contact Created"
        assert lead_store.create_lead.await_args.args[1]["home_price"] == 350000


def stored_lead(status="new", property_id=None, is_purchased=False):
    return SimpleNamespace(
        lead_id=uuid4(), status=status, property_id=property_id, is_purchased=is_purchased,
        updated_at=datetime.utcnow(),
    )


async def apply_status(db, lead, new_status, changed_by=None, notes=None):
    lead.status = new_status
    lead.updated_at = datetime.utcnow()
    return lead


class TestStatusTransitions:

    @pytest.mark.asyncio
    async def test_new_to_contacted(self, mock_db):
        lead = stored_lead()
        with patch("app.crud.lead.get_lead_by_id", new_callable=AsyncMock, return_value=lead), \
                patch("app.crud.lead.update_lead_status", new_callable=AsyncMock, side_effect=apply_status):
            response = await LeadServices.update_lead_status(lead.lead_id, "contacted", mock_db)

        assert response.previous_status == "new"
        assert response.status == "contacted"
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_skipping_stages_is_rejected(self, mock_db):
        lead = stored_lead()
        with patch("app.crud.lead.get_lead_by_id", new_callable=AsyncMock, return_value=lead), \
                patch("app.crud.lead.update_lead_status", new_callable=AsyncMock) as update:
            with pytest.raises(InvalidTransitionError):
                await LeadServices.update_lead_status(lead.lead_id, "converted", mock_db)
        update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_terminal_status(self, mock_db):
        lead = stored_lead(status="lost")
        with patch("app.crud.lead.get_lead_by_id", new_callable=AsyncMock, return_value=lead):
            with pytest.raises(InvalidTransitionError):
                await LeadServices.update_lead_status(lead.lead_id, "contacted", mock_db)

    @pytest.mark.asyncio
    async def test_conversion_counts_on_property(self, mock_db):
        lead = stored_lead(status="qualified", property_id="MLS-42")
        with patch("app.crud.lead.get_lead_by_id", new_callable=AsyncMock, return_value=lead), \
                patch("app.crud.lead.update_lead_status", new_callable=AsyncMock, side_effect=apply_status), \
                patch("app.services.lead_services.PropertyMetricsService.record_event", new_callable=AsyncMock) as record_event:
            await LeadServices.update_lead_status(lead.lead_id, "converted", mock_db)

        record_event.assert_awaited_once_with(mock_db, "MLS-42", "conversion")

    @pytest.mark.asyncio
    async def test_missing_lead(self, mock_db):
        with patch("app.crud.lead.get_lead_by_id", new_callable=AsyncMock, return_value=None):
            with pytest.raises(LookupError):
                await LeadServices.update_lead_status(uuid4(), "contacted", mock_db)


class TestPurchase:

    @pytest.mark.asyncio
    async def test_purchase_once(self, mock_db):
        lead = stored_lead()
        agent_id = uuid4()
        with patch("app.crud.lead.get_lead_by_id", new_callable=AsyncMock, return_value=lead), \
                patch("app.crud.lead.mark_purchased", new_callable=AsyncMock) as mark:
            await LeadServices.purchase_lead(lead.lead_id, agent_id, Decimal("49.00"), mock_db)
        mark.assert_awaited_once_with(mock_db, lead, agent_id, Decimal("49.00"))

    @pytest.mark.asyncio
    async def test_already_purchased(self, mock_db):
        lead = stored_lead(is_purchased=True)
        with patch("app.crud.lead.get_lead_by_id", new_callable=AsyncMock, return_value=lead):
            with pytest.raises(InvalidTransitionError):
                await LeadServices.purchase_lead(lead.lead_id, uuid4(), Decimal("49.00"), mock_db)
