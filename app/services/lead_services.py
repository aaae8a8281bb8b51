import hashlib
import json
import logging
import re
import traceback
from decimal import Decimal
from typing import Optional
from uuid import UUID

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import InvalidTransitionError
from app.crud import lead as lead_crud
from app.crud import market_metrics as market_crud
from app.crud import property_metrics as property_crud
from app.schemas.lead import (
    LeadCaptureResponse,
    LeadStatusUpdateResponse,
    RecentCapture,
    RecentLeadsResponse,
    RecentStatusChange,
)
from app.schemas.submission import LeadSubmission, MortgageLeadRequest
from app.services.lead_classifier import LeadClassifier
from app.services.lead_scoring import LeadScoringEngine, ScoreResult
from app.services.pipeline_router import PipelineRouter, lead_record
from app.services.property_metrics import PropertyMetricsService

logger = logging.getLogger(__name__)

# Allowed lead status transitions; converted and lost are terminal
STATUS_TRANSITIONS = {
    "new": {"contacted", "lost"},
    "contacted": {"qualified", "lost"},
    "qualified": {"converted", "lost"},
    "converted": set(),
    "lost": set(),
}
TRUTHY = {"yes", "y", "true", "1"}


def _timeline_months(timeline: Optional[str]) -> Optional[int]:
    if not timeline:
        return None
    text = timeline.lower()
    if re.search(r"\b(asap|immediate\w*|now)\b", text):
        return 1
    match = re.search(r"\d+", text)
    if not match:
        return None
    months = int(match.group())
    return months * 12 if "year" in text else months


def _replay_key(submission: LeadSubmission, category: str) -> Optional[str]:
    """Key on the whole normalized payload so only an identical resend replays."""
    if not submission.email:
        return None
    payload = submission.model_dump(mode="json", exclude_none=True)
    payload["email"] = submission.email.lower()
    digest = hashlib.sha256(json.dumps(payload, sort_keys=True).encode()).hexdigest()
    return f"lead:submission:{category}:{digest}"


class LeadServices:

    @staticmethod
    async def _score(
        submission: LeadSubmission,
        db: AsyncSession,
        engine: LeadScoringEngine,
    ) -> ScoreResult:
        """Score from the submission plus what is known about its property and market."""
        property_score, market_heat = None, None
        if submission.property_id:
            try:
                metrics = await property_crud.get_by_property_id(db, submission.property_id)
                if metrics is not None:
                    property_score = metrics.lead_score
                    if metrics.city and metrics.state:
                        market = await market_crud.get_active(db, metrics.city, metrics.state)
                        market_heat = market.market_heat if market else None
            except SQLAlchemyError as e:
                # scoring must not fail a submission
                logger.warning("Property lookup for scoring failed: %s", e)

        inputs = engine.build_lead_inputs(
            property_score=property_score,
            engagement_seconds=submission.engagement_seconds,
            source_channel=submission.lead_source_channel,
            qualification={
                "budget": submission.budget,
                "bedrooms": submission.property_beds,
                "timeline_months": _timeline_months(submission.timeline),
                "preapproved": (submission.preapproved or "").lower() in TRUTHY,
            },
            market_heat=market_heat,
        )
        return engine.score_lead(inputs)

    @staticmethod
    async def capture_lead(
        submission: LeadSubmission,
        db: AsyncSession,
        redis,
        router: PipelineRouter,
        engine: Optional[LeadScoringEngine] = None,
    ) -> LeadCaptureResponse:
        """
        Capture an inbound lead form submission.

        Workflow:
        1. Classify the submission (mortgage check, then the domain/field chain).
        2. Replay: an identical resubmission (same normalized payload and
           category) inside the dedup TTL returns the cached response instead
           of creating a second CRM contact. Any other payload is routed.
        3. Score the lead from engagement, qualification, property and market.
        4. Route through `PipelineRouter` (CRM first, local fallback + relay).
        5. On CRM success persist the Lead with its CRM ids; on fallback the
           router has already persisted it.
        6. Count a lead event on the linked property.
        7. Cache the response for replay.

        Args:
            submission (LeadSubmission): Validated form payload.
            db (AsyncSession): Active SQLAlchemy async database session.
            redis: Redis client for replay caching. Redis errors are logged, never fatal.
            router (PipelineRouter): Configured router with CRM client and relay.
            engine (LeadScoringEngine): Optional scorer with custom weights.

        Returns:
            LeadCaptureResponse: Category, score and the routing result.

        Raises:
            LeadPersistenceError: CRM delivery failed and the local write failed too.
        """
        engine = engine or LeadScoringEngine()

        # 1. --- Classify ---
        classification = LeadClassifier.from_config(router.config).classify_submission(submission)
        category = classification.category

        # 2. --- Replay check ---
        replay_key = _replay_key(submission, category.value)
        if replay_key:
            try:
                cached = await redis.get(replay_key)
                if cached:
                    logger.info("Replaying cached routing result for %s", replay_key)
                    response = LeadCaptureResponse.model_validate_json(cached)
                    response.replayed = True
                    return response
            except RedisError as e:
                logger.warning("Replay cache read failed: %s", e)

        # 3. --- Score ---
        score = await LeadServices._score(submission, db, engine)

        # 4. --- Route ---
        result = await router.route(db, submission, classification, score)

        # 5. --- Persist delivered lead ---
        if not result.fallback:
            record = lead_record(submission, classification, score)
            record.update(
                crm_contact_id=result.contact_id,
                crm_pipeline_id=router.select_pipeline(category, submission).pipeline_id,
                delivery_status="delivered",
            )
            try:
                lead = await lead_crud.create_lead(db, record)
                await db.commit()
                result.lead_id = lead.lead_id
            except SQLAlchemyError as e:
                # the CRM holds the contact, so the lead is not lost
                logger.error("Local copy of delivered lead failed: %s\n%s", e, traceback.format_exc())
                await db.rollback()

        # 6. --- Property lead event ---
        if submission.property_id:
            try:
                await PropertyMetricsService.record_event(db, submission.property_id, "lead", engine=engine)
                await db.commit()
            except SQLAlchemyError as e:
                logger.warning("Could not record lead event for property %s: %s", submission.property_id, e)

        response = LeadCaptureResponse(
            category=category,
            quality_score=round(score.composite, 2),
            quality_label=score.label.value,
            score_breakdown=score.as_dict()["breakdown"],
            needs_review=classification.ambiguous,
            routing=result,
        )

        # 7. --- Cache for replay ---
        if replay_key:
            try:
                await redis.set(replay_key, response.model_dump_json(), ex=get_settings().submission_dedup_ttl_seconds)
            except RedisError as e:
                logger.warning("Replay cache write failed: %s", e)

        return response

    @staticmethod
    async def capture_mortgage_lead(
        request: MortgageLeadRequest,
        db: AsyncSession,
        redis,
        router: PipelineRouter,
        engine: Optional[LeadScoringEngine] = None,
    ) -> LeadCaptureResponse:
        return await LeadServices.capture_lead(request.to_submission(), db, redis, router, engine)

    @staticmethod
    async def update_lead_status(
        lead_id: UUID,
        new_status: str,
        db: AsyncSession,
        changed_by: Optional[UUID] = None,
        notes: Optional[str] = None,
    ) -> LeadStatusUpdateResponse:
        """
        Move a lead along new -> contacted -> qualified -> converted (or to lost).

        Writes a LeadStatusHistory row. Converting a lead linked to a property
        counts a conversion on that property.
        """
        lead = await lead_crud.get_lead_by_id(db, lead_id)
        if not lead:
            raise LookupError("Lead not found")

        previous = lead.status
        if new_status not in STATUS_TRANSITIONS.get(previous, set()):
            raise InvalidTransitionError(f"Cannot move lead from '{previous}' to '{new_status}'")

        await lead_crud.update_lead_status(db, lead, new_status, changed_by=changed_by, notes=notes)

        if new_status == "converted" and lead.property_id:
            await PropertyMetricsService.record_event(db, lead.property_id, "conversion")

        await db.commit()

        return LeadStatusUpdateResponse(
            lead_id=lead.lead_id,
            previous_status=previous,
            status=lead.status,
            updated_at=lead.updated_at,
        )

    @staticmethod
    async def purchase_lead(lead_id: UUID, agent_id: UUID, price: Decimal, db: AsyncSession):
        lead = await lead_crud.get_lead_by_id(db, lead_id)
        if not lead:
            raise LookupError("Lead not found")
        if lead.is_purchased:
            raise InvalidTransitionError("Lead has already been purchased")

        await lead_crud.mark_purchased(db, lead, agent_id, price)
        await db.commit()
        logger.info("Lead %s purchased by agent %s for %s", lead_id, agent_id, price)
        return lead

    @staticmethod
    async def get_recent_leads(limit: int, db: AsyncSession) -> RecentLeadsResponse:
        # 1. --- Recent Captures ---
        recent_captures = await lead_crud.list_recent(db, limit)

        # 2. --- Recent Updates ---
        recent_updates = await lead_crud.list_recent_status_changes(db, limit)

        return RecentLeadsResponse(
            recent_captures=[RecentCapture.model_validate(lead) for lead in recent_captures],
            recent_updates=[RecentStatusChange.model_validate(update) for update in recent_updates],
        )
