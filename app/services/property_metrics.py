import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.crud import market_metrics as market_crud
from app.crud import property_metrics as property_crud
from app.models.property_metrics import PropertyMetrics
from app.services.analytics_rollup import safe_rate
from app.services.lead_scoring import LeadScoringEngine, PropertyScoreInputs

logger = logging.getLogger(__name__)

PROPERTY_EVENTS = ("view", "lead", "conversion")


class PropertyMetricsService:

    @staticmethod
    async def record_event(
        db: AsyncSession,
        property_id: str,
        event: str,
        listing: Optional[dict] = None,
        engine: Optional[LeadScoringEngine] = None,
    ) -> PropertyMetrics:
        """
        Count a view / lead / conversion for a property and rescore it.

        The counter increment is a single INSERT ... ON CONFLICT DO UPDATE, so
        concurrent events never lose an update. The caller commits.
        """
        if event not in PROPERTY_EVENTS:
            raise ValueError(f"event must be one of {', '.join(PROPERTY_EVENTS)}")

        await property_crud.increment_counter(db, property_id, event, listing)
        return await PropertyMetricsService.refresh_scores(db, property_id, engine=engine)

    @staticmethod
    async def refresh_scores(
        db: AsyncSession,
        property_id: str,
        market_heat: Optional[str] = None,
        engine: Optional[LeadScoringEngine] = None,
    ) -> PropertyMetrics:
        """Recompute rates, rolling averages and the lead score from the stored totals."""
        row = await property_crud.get_by_property_id(db, property_id)
        if row is None:
            raise LookupError(f"No metrics for property {property_id}")

        if market_heat is None and row.city and row.state:
            market = await market_crud.get_active(db, row.city, row.state)
            market_heat = market.market_heat if market else None

        now = datetime.utcnow()
        row.view_to_lead_rate = safe_rate(row.total_leads, row.total_views)
        row.lead_to_conversion_rate = safe_rate(row.total_conversions, row.total_leads)

        age_days = max((now - (row.created_at or now)).total_seconds() / 86400, 1.0)
        row.avg_leads_per_day = (row.total_leads or 0) / age_days
        row.avg_leads_per_week = row.avg_leads_per_day * 7

        score = (engine or LeadScoringEngine()).score_property(
            PropertyScoreInputs(
                total_views=row.total_views,
                total_leads=row.total_leads,
                lead_to_conversion_rate=row.lead_to_conversion_rate,
                view_to_lead_rate=row.view_to_lead_rate,
                market_heat=market_heat,
                price_percentile=row.price_percentile,
                days_on_market=row.days_on_market,
            )
        )
        row.lead_score = score.composite
        row.score_factors = score.as_dict()["breakdown"]
        row.updated_at = now
        await db.flush()
        return row

    @staticmethod
    async def rerank_market(db: AsyncSession, city: str, state: str) -> List[PropertyMetrics]:
        """Assign market_rank and market_percentile within one (city, state)."""
        rows = await property_crud.list_by_market(db, city, state)
        by_id = {r.property_id: r for r in rows}
        ranking = LeadScoringEngine.rank_properties((r.property_id, r.lead_score) for r in rows)
        for entry in ranking:
            row = by_id[entry["property_id"]]
            row.market_rank = entry["rank"]
            row.market_percentile = entry["percentile"]
        await db.flush()
        logger.info("Reranked %d properties in %s, %s", len(rows), city, state)
        return [by_id[e["property_id"]] for e in ranking]
