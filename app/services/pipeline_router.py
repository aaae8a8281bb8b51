import asyncio
import logging
import traceback
from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import RoutingConfig
from app.core.exceptions import CRMConfigurationError, CRMError, DuplicateContactError, LeadPersistenceError
from app.crud import lead as lead_crud
from app.schemas.routing import FallbackReason, RelayOutcome, RoutingResult
from app.schemas.submission import LeadCategory, LeadSubmission
from app.services.crm_client import GoHighLevelClient, build_contact_payload
from app.services.lead_classifier import Classification
from app.services.lead_scoring import ScoreResult, to_number
from app.services.relay import WebhookRelay

logger = logging.getLogger(__name__)

AGENT_PIPELINE_NAME = "Business Conector - Lead to Customer"
BUYER_PIPELINE_NAME = "Buyer Leads - Property to Sale"
BUYER_PENDING_NAME = "Contact Created (Pipeline Pending Setup)"
CONTACT_ONLY_NAME = "Contact Created"
RELAY_PIPELINE_NAME = "Webhook Relay"
RELAY_PENDING_NAME = "Database (Webhook Pending)"

CATEGORY_DETAIL_FIELDS = {
    LeadCategory.AGENT: (
        "brokerage_name", "years_experience", "current_lead_source",
        "monthly_lead_budget", "interested_package", "selected_plan",
    ),
    LeadCategory.BUYER: (
        "property_address", "property_price", "budget", "timeline", "preapproved",
        "property_beds", "property_baths", "property_sqft",
    ),
    LeadCategory.MORTGAGE: (),
}


@dataclass(frozen=True)
class PipelineSelection:
    pipeline_id: Optional[str]
    stage_id: Optional[str]
    monetary_value: float
    name: str
    opportunity_name: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.pipeline_id and self.stage_id)


@dataclass(frozen=True)
class DeliveryOutcome:
    ok: bool
    contact_id: Optional[str] = None
    reason: Optional[FallbackReason] = None

    @classmethod
    def delivered(cls, contact_id: str) -> "DeliveryOutcome":
        return cls(ok=True, contact_id=contact_id)

    @classmethod
    def failed(cls, reason: FallbackReason) -> "DeliveryOutcome":
        return cls(ok=False, reason=reason)


def agent_monetary_value(submission: LeadSubmission) -> int:
    if submission.selected_plan == "content" or submission.interested_package == "Premium":
        return 891
    if submission.selected_plan == "nurture" or submission.interested_package == "Professional":
        return 597
    return 397


def _optional_number(value: Any, integer: bool = False) -> Optional[float]:
    if value is None:
        return None
    number = to_number(str(value).replace(",", "").replace("$", ""))
    return int(number) if integer else number


def lead_record(
    submission: LeadSubmission,
    classification: Classification,
    score: Optional[ScoreResult] = None,
) -> Dict[str, Any]:
    """Column values for a Lead row built from a submission."""
    s = submission
    category = classification.category
    details = {f: getattr(s, f) for f in CATEGORY_DETAIL_FIELDS[category] if getattr(s, f) is not None}
    state = s.state.upper() if s.state and len(s.state) == 2 else None

    record: Dict[str, Any] = {
        "category": category.value,
        "first_name": s.first_name or "",
        "last_name": s.last_name or "",
        "email": s.email,
        "phone": s.phone,
        "city": s.city,
        "state": state,
        "zip_code": s.zip_code,
        "source": s.source or "website",
        "property_id": s.property_id,
        "details": details or None,
        "notes": s.message,
        "needs_review": classification.ambiguous,
    }
    if category == LeadCategory.MORTGAGE:
        record.update(
            home_price=_optional_number(s.home_price),
            down_payment=_optional_number(s.down_payment),
            interest_rate=_optional_number(s.interest_rate),
            loan_term=_optional_number(s.loan_term, integer=True),
            monthly_payment=_optional_number(s.monthly_payment),
        )
    if score is not None:
        record.update(
            quality_score=score.composite,
            quality_label=score.label.value,
            score_breakdown=score.as_dict()["breakdown"],
        )
    return record


class PipelineRouter:
    """
        Delivers a classified lead to the CRM, falling back to local storage.

        Workflow per submission:
        1. Select pipeline/stage/value for the category (may be "none configured").
        2. Create the contact; a duplicate is resolved by looking the contact up.
        3. Place the contact in the pipeline when one is configured.
        4. Any failure in 2-3 yields a `FallbackReason` instead of an exception:
           the lead is written locally (once) and handed to the webhook relay,
           which runs detached and is waited on no longer than its timeout.

        Only a failure of the local write escapes, as `LeadPersistenceError`.
    """

    def __init__(self, config: RoutingConfig, crm: GoHighLevelClient, relay: WebhookRelay):
        self.config = config
        self.crm = crm
        self.relay = relay

    # ---------------- SELECT PIPELINE ----------------

    def select_pipeline(self, category: LeadCategory, submission: LeadSubmission) -> PipelineSelection:
        cfg = self.config
        if category == LeadCategory.AGENT:
            return PipelineSelection(
                pipeline_id=cfg.agent_pipeline_id or None,
                stage_id=cfg.agent_stage_id or None,
                monetary_value=agent_monetary_value(submission),
                name=AGENT_PIPELINE_NAME,
                opportunity_name="Agent Client Lead",
            )

        if cfg.buyer_pipeline_configured:
            return PipelineSelection(
                pipeline_id=cfg.buyer_pipeline_id,
                stage_id=cfg.buyer_stage_id,
                monetary_value=0,
                name=BUYER_PIPELINE_NAME,
                opportunity_name="Home Buyer Lead",
            )

        name = BUYER_PENDING_NAME if category == LeadCategory.BUYER else CONTACT_ONLY_NAME
        return PipelineSelection(pipeline_id=None, stage_id=None, monetary_value=0, name=name)

    # ---------------- DELIVER ----------------

    async def _upsert_contact(self, category: LeadCategory, submission: LeadSubmission) -> Dict[str, Any]:
        payload = build_contact_payload(category, submission)
        try:
            return await self.crm.create_contact(payload)
        except DuplicateContactError:
            logger.info("Contact already exists, looking up %s", submission.email)
            existing = await self.crm.find_duplicate(submission.email)
            if not existing:
                raise CRMError("Duplicate reported but no existing contact found", status_code=422)
            return existing

    async def _deliver(
        self,
        category: LeadCategory,
        submission: LeadSubmission,
        selection: PipelineSelection,
    ) -> DeliveryOutcome:
        try:
            contact = await self._upsert_contact(category, submission)
        except CRMConfigurationError:
            return DeliveryOutcome.failed(FallbackReason.CRM_NOT_CONFIGURED)
        except CRMError as e:
            logger.warning("CRM contact create failed (%s): %s", e.status_code, e)
            if e.status_code is None:
                return DeliveryOutcome.failed(FallbackReason.CRM_UNREACHABLE)
            return DeliveryOutcome.failed(FallbackReason.CRM_REJECTED)
        except Exception as e:
            logger.warning("CRM contact create raised %s: %s", type(e).__name__, e)
            return DeliveryOutcome.failed(FallbackReason.CRM_UNREACHABLE)

        contact_id = (contact or {}).get("id")
        if not contact_id:
            return DeliveryOutcome.failed(FallbackReason.CRM_REJECTED)

        if not selection.configured:
            logger.info("No pipeline configured for %s, contact %s created only", category.value, contact_id)
            return DeliveryOutcome.delivered(contact_id)

        try:
            await self.crm.add_to_pipeline(
                contact_id,
                selection.pipeline_id,
                selection.stage_id,
                selection.monetary_value,
                selection.opportunity_name,
            )
        except Exception as e:
            logger.warning("Pipeline placement failed for contact %s: %s", contact_id, e)
            return DeliveryOutcome.failed(FallbackReason.PIPELINE_FAILED)

        return DeliveryOutcome.delivered(contact_id)

    # ---------------- ROUTE ----------------

    async def route(
        self,
        db: AsyncSession,
        submission: LeadSubmission,
        classification: Classification,
        score: Optional[ScoreResult] = None,
    ) -> RoutingResult:
        category = classification.category
        selection = self.select_pipeline(category, submission)
        outcome = await self._deliver(category, submission, selection)

        if outcome.ok:
            return RoutingResult(
                success=True,
                contact_id=outcome.contact_id,
                lead_type=category,
                pipeline=selection.name,
                message=f"{category.value.title()} lead processed successfully",
            )

        return await self._fallback(db, submission, classification, score, outcome.reason)

    async def _fallback(
        self,
        db: AsyncSession,
        submission: LeadSubmission,
        classification: Classification,
        score: Optional[ScoreResult],
        reason: FallbackReason,
    ) -> RoutingResult:
        category = classification.category
        logger.warning("CRM delivery failed (%s), storing %s lead locally", reason.value, category.value)

        # 1. --- Durable local write ---
        record = lead_record(submission, classification, score)
        record.update(lead_id=uuid4(), delivery_status="fallback", fallback_reason=reason.value)
        try:
            lead = await lead_crud.create_lead(db, record)
            await db.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.error("Fallback storage failed: %s\n%s", e, traceback.format_exc())
            raise LeadPersistenceError("Failed to store lead. Please try again later.") from e

        # 2. --- Best-effort relay, bounded wait ---
        task = self.relay.dispatch(self.relay.build_payload(category, submission))
        done, _ = await asyncio.wait({task}, timeout=self.relay.timeout)
        relay_outcome = task.result() if task in done else RelayOutcome.TIMED_OUT

        try:
            await lead_crud.set_relay_status(db, lead, relay_outcome.value)
            await db.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Could not record relay outcome for lead %s: %s", lead.lead_id, e)

        webhook_sent = relay_outcome == RelayOutcome.SENT
        return RoutingResult(
            success=True,
            contact_id=f"LOCAL-{lead.lead_id}",
            lead_type=category,
            pipeline=RELAY_PIPELINE_NAME if webhook_sent else RELAY_PENDING_NAME,
            message=(
                "Lead captured and sent to the CRM via webhook relay."
                if webhook_sent
                else "Lead captured and stored locally. Will sync to the CRM when the relay is available."
            ),
            fallback=True,
            webhook_sent=webhook_sent,
            fallback_reason=reason,
            relay_outcome=relay_outcome,
            lead_id=lead.lead_id,
        )


_router: Optional[PipelineRouter] = None


def get_pipeline_router() -> PipelineRouter:
    """Shared router; the relay inside it tracks in-flight tasks across requests."""
    global _router
    if _router is None:
        _router = PipelineRouter(
            config=RoutingConfig.from_settings(),
            crm=GoHighLevelClient.from_settings(),
            relay=WebhookRelay.from_settings(),
        )
    return _router
