"""
GoHighLevel CRM client: contact creation, duplicate lookup and pipeline placement.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import Settings, get_settings
from app.core.exceptions import CRMConfigurationError, CRMError, DuplicateContactError
from app.schemas.submission import LeadCategory, LeadSubmission

logger = logging.getLogger(__name__)


@dataclass
class ContactPayload:
    first_name: str
    last_name: str
    email: Optional[str]
    phone: Optional[str]
    source: str
    tags: List[str] = field(default_factory=list)
    custom_fields: Dict[str, str] = field(default_factory=dict)


def build_contact_payload(category: LeadCategory, submission: LeadSubmission) -> ContactPayload:
    """Tags and custom fields per lead category."""
    s = submission
    base = dict(first_name=s.first_name or "", last_name=s.last_name or "", email=s.email, phone=s.phone)

    if category == LeadCategory.MORTGAGE:
        return ContactPayload(
            **base,
            source="Mortgage Calculator - Property Website",
            tags=["mortgage-lead", "pre-approval-request", "high-intent-buyer"],
            custom_fields={
                "home_price": s.home_price or "",
                "down_payment": s.down_payment or "",
                "interest_rate": s.interest_rate or "",
                "loan_term": s.loan_term or "",
                "monthly_payment": s.monthly_payment or "",
                "lead_source": "Mortgage Calculator",
                "website_url": s.source or "centralfloridahomes.com",
            },
        )

    if category == LeadCategory.BUYER:
        return ContactPayload(
            **base,
            source=s.source or "Property Website",
            tags=["buyer-lead", "property-interest", s.city or "florida"],
            custom_fields={
                "property_address": s.property_address or "",
                "property_price": s.property_price or "",
                "property_id": s.property_id or "",
                "budget": s.budget or "",
                "timeline": s.timeline or "",
                "preapproved": s.preapproved or "",
                "property_beds": s.property_beds or "",
                "property_baths": s.property_baths or "",
                "property_sqft": s.property_sqft or "",
                "city": s.city or "",
                "website_url": s.source or "",
            },
        )

    return ContactPayload(
        **base,
        source=s.source or "businessconector.com",
        tags=["agent-prospect", "website-lead", s.source or "website"],
        custom_fields={
            "brokerage": s.brokerage_name or "",
            "years_experience": s.years_experience or "",
            "current_lead_source": s.current_lead_source or "",
            "monthly_lead_budget": s.monthly_lead_budget or "",
            "interested_in": s.interested_package or s.selected_plan or "Starter",
            "message": s.message or "",
        },
    )


class GoHighLevelClient:
    """
        Thin async wrapper over the GoHighLevel REST API.

        Transport failures and timeouts surface as `CRMError` with no status
        code; HTTP error responses carry the status. A 422 on contact creation
        means the contact already exists and raises `DuplicateContactError`.
    """

    def __init__(
        self,
        api_base: str,
        api_key: str,
        location_id: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.location_id = location_id
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "GoHighLevelClient":
        settings = settings or get_settings()
        return cls(
            api_base=settings.gohighlevel_api_base,
            api_key=settings.gohighlevel_api_key,
            location_id=settings.gohighlevel_location_id,
            timeout=settings.crm_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.location_id)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if not self.configured:
            raise CRMConfigurationError("GoHighLevel credentials not configured")
        try:
            async with httpx.AsyncClient(
                base_url=self.api_base,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                return await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise CRMError(f"GoHighLevel unreachable: {e}") from e

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError:
            return {}

    async def create_contact(self, payload: ContactPayload) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            "/contacts/",
            json={
                "locationId": self.location_id,
                "firstName": payload.first_name,
                "lastName": payload.last_name,
                "email": payload.email,
                "phone": payload.phone,
                "tags": payload.tags,
                "customFields": payload.custom_fields,
                "source": payload.source,
            },
        )
        if response.status_code == 422:
            raise DuplicateContactError("Contact already exists", status_code=422)
        if response.status_code >= 400:
            raise CRMError(f"Contact create failed: {response.text[:200]}", status_code=response.status_code)

        data = self._json(response)
        contact = data.get("contact") or data
        logger.info("GoHighLevel contact created: %s", contact.get("id"))
        return contact

    async def find_duplicate(self, email: Optional[str]) -> Optional[Dict[str, Any]]:
        if not email:
            return None
        response = await self._request(
            "GET",
            "/contacts/search/duplicate",
            params={"locationId": self.location_id, "email": email},
        )
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise CRMError(f"Duplicate search failed: {response.text[:200]}", status_code=response.status_code)
        return self._json(response).get("contact")

    async def add_to_pipeline(
        self,
        contact_id: str,
        pipeline_id: str,
        stage_id: str,
        monetary_value: float,
        name: str,
    ) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            "/opportunities/",
            json={
                "locationId": self.location_id,
                "pipelineId": pipeline_id,
                "pipelineStageId": stage_id,
                "contactId": contact_id,
                "name": name,
                "status": "open",
                "monetaryValue": monetary_value,
            },
        )
        if response.status_code >= 400:
            raise CRMError(f"Pipeline placement failed: {response.text[:200]}", status_code=response.status_code)
        logger.info("Contact %s added to pipeline %s", contact_id, pipeline_id)
        return self._json(response)
