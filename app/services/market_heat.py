import logging
import statistics
from dataclasses import dataclass, field
from datetime import datetime
from itertools import groupby
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings, validate_weights
from app.crud import market_metrics as market_crud
from app.crud import property_metrics as property_crud
from app.services.lead_scoring import HeatLabel, clamp, heat_label, to_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PropertyMarketFacts:
    property_id: str
    total_leads: int = 0
    total_conversions: int = 0
    list_price: Optional[float] = None
    days_on_market: Optional[float] = None
    price_reduced: bool = False
    listing_status: str = "active"

    @classmethod
    def from_metrics(cls, row: Any) -> "PropertyMarketFacts":
        return cls(
            property_id=row.property_id,
            total_leads=int(to_number(row.total_leads)),
            total_conversions=int(to_number(row.total_conversions)),
            list_price=None if row.list_price is None else to_number(row.list_price),
            days_on_market=None if row.days_on_market is None else to_number(row.days_on_market),
            price_reduced=bool(row.price_reduced),
            listing_status=row.listing_status or "active",
        )


@dataclass
class MarketSnapshot:
    city: str
    state: str
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    total_properties: int = 0
    active_listings: int = 0
    sold_listings: int = 0
    avg_price: Optional[float] = None
    median_price: Optional[float] = None
    avg_days_on_market: Optional[float] = None
    price_reduction_rate: float = 0.0
    total_leads: int = 0
    leads_per_property: float = 0.0
    conversion_rate: float = 0.0
    heat_score: float = 0.0
    market_heat: HeatLabel = HeatLabel.COLD
    heat_factors: Dict[str, float] = field(default_factory=dict)
    price_change: Optional[float] = None
    leads_trend: Optional[float] = None
    has_baseline: bool = False
    market_rank: Optional[int] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "city": self.city,
            "state": self.state,
            "period_start": self.period_start,
            "period_end": self.period_end,
            "total_properties": self.total_properties,
            "active_listings": self.active_listings,
            "sold_listings": self.sold_listings,
            "avg_price": self.avg_price,
            "median_price": self.median_price,
            "avg_days_on_market": self.avg_days_on_market,
            "price_reduction_rate": self.price_reduction_rate,
            "total_leads": self.total_leads,
            "leads_per_property": self.leads_per_property,
            "conversion_rate": self.conversion_rate,
            "heat_score": self.heat_score,
            "market_heat": self.market_heat.value,
            "heat_factors": self.heat_factors,
            "price_change": self.price_change,
            "leads_trend": self.leads_trend,
            "has_baseline": self.has_baseline,
            "market_rank": self.market_rank,
        }


def percent_change(current: Optional[float], previous: Optional[float]) -> Optional[float]:
    """Percent delta vs a baseline; None when there is no usable baseline."""
    if current is None or previous is None:
        return None
    previous = to_number(previous)
    if previous == 0:
        return None
    return (to_number(current) - previous) / previous * 100


class MarketHeatAggregator:
    """
        Rolls property metrics up into a per-market heat score.

        Sub-scores (each 0-100):
        - demand: leads per property, 3 leads/property saturates
        - conversion: lead -> conversion rate, 20% saturates
        - turnover: inverse of average days on market, a week or less is full
        - price_stability: fewer price reductions is hotter (100 - 2 x reduction %)
    """

    def __init__(self, weights: Optional[Mapping[str, float]] = None):
        self.weights = validate_weights(dict(weights or get_settings().market_heat_weights))

    def aggregate(
        self,
        city: str,
        state: str,
        properties: Sequence[PropertyMarketFacts],
        previous: Any = None,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
    ) -> MarketSnapshot:
        snapshot = MarketSnapshot(city=city, state=state, period_start=period_start, period_end=period_end)
        total = len(properties)
        snapshot.total_properties = total

        if total:
            snapshot.active_listings = sum(1 for p in properties if p.listing_status == "active")
            snapshot.sold_listings = sum(1 for p in properties if p.listing_status == "sold")

            prices = [p.list_price for p in properties if p.list_price is not None]
            if prices:
                snapshot.avg_price = sum(prices) / len(prices)
                snapshot.median_price = float(statistics.median(prices))

            days = [p.days_on_market for p in properties if p.days_on_market is not None]
            if days:
                snapshot.avg_days_on_market = sum(days) / len(days)

            snapshot.price_reduction_rate = sum(1 for p in properties if p.price_reduced) / total * 100
            snapshot.total_leads = sum(p.total_leads for p in properties)
            snapshot.leads_per_property = snapshot.total_leads / total
            conversions = sum(p.total_conversions for p in properties)
            snapshot.conversion_rate = conversions / snapshot.total_leads * 100 if snapshot.total_leads else 0.0

            if snapshot.avg_days_on_market is None:
                turnover = 0.0
            else:
                turnover = clamp(100 * 7 / max(snapshot.avg_days_on_market, 7))

            factors = {
                "demand": clamp(snapshot.leads_per_property / 3 * 100),
                "conversion": clamp(snapshot.conversion_rate / 20 * 100),
                "turnover": turnover,
                "price_stability": clamp(100 - 2 * snapshot.price_reduction_rate),
            }
            snapshot.heat_factors = factors
            snapshot.heat_score = clamp(sum(self.weights.get(k, 0.0) * v for k, v in factors.items()))

        snapshot.market_heat = heat_label(snapshot.heat_score)

        # --- Trends vs previous period ---
        if previous is not None:
            snapshot.price_change = percent_change(snapshot.avg_price, getattr(previous, "avg_price", None))
            snapshot.leads_trend = percent_change(snapshot.total_leads, getattr(previous, "total_leads", None))
        snapshot.has_baseline = snapshot.leads_trend is not None or snapshot.price_change is not None

        return snapshot


def rank_markets(snapshots: Iterable[MarketSnapshot]) -> List[MarketSnapshot]:
    """Order by heat desc, then total leads desc, then city asc; assigns 1-based market_rank."""
    ordered = sorted(snapshots, key=lambda s: (-s.heat_score, -s.total_leads, s.city.lower(), s.state))
    for index, snapshot in enumerate(ordered, start=1):
        snapshot.market_rank = index
    return ordered


class MarketHeatService:

    @staticmethod
    async def recompute(
        db: AsyncSession,
        period_start: datetime,
        period_end: datetime,
        aggregator: Optional[MarketHeatAggregator] = None,
    ) -> List[MarketSnapshot]:
        """
        Recompute heat for every market that has property metrics.

        Workflow:
        1. Load property metrics that carry a city/state, grouped by market.
        2. For each market, fetch the latest earlier period as the trend baseline.
        3. Aggregate, then rank all markets together.
        4. Persist each snapshot; saving supersedes the market's previous active row.
        5. Commit once for the whole run.
        """
        aggregator = aggregator or MarketHeatAggregator()
        rows = await property_crud.list_with_market(db)

        snapshots = []
        for (city, state), group in groupby(rows, key=lambda r: (r.city, r.state)):
            facts = [PropertyMarketFacts.from_metrics(r) for r in group]
            previous = await market_crud.get_previous_period(db, city, state, period_start)
            snapshots.append(
                aggregator.aggregate(city, state, facts, previous=previous,
                                     period_start=period_start, period_end=period_end)
            )

        ranked = rank_markets(snapshots)
        for snapshot in ranked:
            await market_crud.save_snapshot(db, snapshot.to_row())
        await db.commit()

        logger.info("Recomputed heat for %d markets (%s - %s)", len(ranked), period_start, period_end)
        return ranked
