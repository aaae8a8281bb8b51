"""Secondary webhook relay for leads that fell back to local storage."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import httpx

from app.core.config import Settings, get_settings
from app.schemas.routing import RelayOutcome
from app.schemas.submission import LeadCategory, LeadSubmission

logger = logging.getLogger(__name__)

# payload key -> submission attribute, included only when present
OPTIONAL_RELAY_FIELDS = {
    "brokerage": "brokerage_name",
    "yearsExperience": "years_experience",
    "plan": "selected_plan",
    "propertyAddress": "property_address",
    "propertyPrice": "property_price",
    "budget": "budget",
    "timeline": "timeline",
    "homePrice": "home_price",
    "downPayment": "down_payment",
    "interestRate": "interest_rate",
    "loanTerm": "loan_term",
    "monthlyPayment": "monthly_payment",
}


class WebhookRelay:
    """
        Best-effort POST of a lead payload to a relay webhook.

        `send` never raises: every result is reported as a `RelayOutcome`.
        `dispatch` runs `send` as a detached task; in-flight tasks are held
        in `_pending` until they finish so they are not garbage collected.
    """

    def __init__(
        self,
        url: str,
        webhook_id: str = "",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.webhook_id = webhook_id
        self.timeout = timeout
        self._transport = transport
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "WebhookRelay":
        settings = settings or get_settings()
        return cls(
            url=settings.relay_webhook_url,
            webhook_id=settings.relay_webhook_id,
            timeout=settings.relay_timeout_seconds,
        )

    def build_payload(self, category: LeadCategory, submission: LeadSubmission) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "webhook_id": self.webhook_id,
            "lead_type": category.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "source": submission.source or "website",
            "contact": {
                "firstName": submission.first_name or "",
                "lastName": submission.last_name or "",
                "email": submission.email,
                "phone": submission.phone or "",
            },
        }
        for key, attr in OPTIONAL_RELAY_FIELDS.items():
            value = getattr(submission, attr)
            if value:
                payload[key] = value
        return payload

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            return await client.post(self.url, json=payload, headers={"Content-Type": "application/json"})

    async def send(self, payload: Dict[str, Any]) -> RelayOutcome:
        if not self.url:
            logger.warning("Relay webhook URL not configured, skipping")
            return RelayOutcome.SKIPPED

        try:
            response = await asyncio.wait_for(self._post(payload), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("Relay webhook timed out after %.1fs", self.timeout)
            return RelayOutcome.TIMED_OUT
        except httpx.HTTPError as e:
            logger.warning("Relay webhook failed: %s", e)
            return RelayOutcome.FAILED

        if 200 <= response.status_code < 300:
            logger.info("Lead relayed to webhook: %s", response.status_code)
            return RelayOutcome.SENT
        logger.warning("Relay webhook returned %s: %s", response.status_code, response.text[:200])
        return RelayOutcome.FAILED

    def dispatch(self, payload: Dict[str, Any]) -> "asyncio.Task[RelayOutcome]":
        task = asyncio.create_task(self.send(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task
