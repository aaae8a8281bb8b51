import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from app.core.config import get_settings, validate_weights


class LeadQuality(str, Enum):
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"
    UNQUALIFIED = "unqualified"


class HeatLabel(str, Enum):
    COLD = "cold"
    WARM = "warm"
    HOT = "hot"
    VERY_HOT = "very_hot"


# Lower bounds, inclusive, highest band first
LEAD_QUALITY_BANDS: Tuple[Tuple[float, LeadQuality], ...] = (
    (70.0, LeadQuality.HOT),
    (40.0, LeadQuality.WARM),
    (20.0, LeadQuality.COLD),
    (0.0, LeadQuality.UNQUALIFIED),
)
HEAT_BANDS: Tuple[Tuple[float, HeatLabel], ...] = (
    (90.0, HeatLabel.VERY_HOT),
    (70.0, HeatLabel.HOT),
    (40.0, HeatLabel.WARM),
    (0.0, HeatLabel.COLD),
)

MARKET_HEAT_POINTS = {
    HeatLabel.COLD: 20.0,
    HeatLabel.WARM: 50.0,
    HeatLabel.HOT: 80.0,
    HeatLabel.VERY_HOT: 100.0,
}

SOURCE_CHANNEL_POINTS = {
    "property_detail": 100.0,
    "search": 80.0,
    "email": 65.0,
    "ad": 55.0,
    "other": 35.0,
}


def to_number(value: Any) -> float:
    """Coerce a loosely-typed input to a finite float; anything unusable counts as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def lead_quality_label(composite: float) -> LeadQuality:
    for lower, label in LEAD_QUALITY_BANDS:
        if composite >= lower:
            return label
    return LeadQuality.UNQUALIFIED


def heat_label(composite: float) -> HeatLabel:
    for lower, label in HEAT_BANDS:
        if composite >= lower:
            return label
    return HeatLabel.COLD


@dataclass(frozen=True)
class LeadScoreInputs:
    view_score: Any = 0
    engagement_score: Any = 0
    conversion_score: Any = 0
    market_score: Any = 0


@dataclass(frozen=True)
class PropertyScoreInputs:
    total_views: Any = 0
    total_leads: Any = 0
    lead_to_conversion_rate: Any = 0  # percent
    view_to_lead_rate: Any = 0  # percent
    market_heat: Optional[str] = None
    price_percentile: Any = None  # 0-100, 50 = market median
    days_on_market: Any = None


@dataclass
class ScoreResult:
    composite: float
    label: Enum
    breakdown: Dict[str, float] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "composite": round(self.composite, 2),
            "label": self.label.value,
            "breakdown": {k: round(v, 2) for k, v in self.breakdown.items()},
        }


def _weighted(sub_scores: Mapping[str, float], weights: Mapping[str, float]) -> float:
    return clamp(sum(weights.get(name, 0.0) * score for name, score in sub_scores.items()))


class LeadScoringEngine:
    """
        Engine for computing 0-100 quality scores for leads and properties.

        Responsibilities:
        1. Lead scoring (`score_lead`):
        - Weighted sum of four sub-scores: view, engagement, conversion, market.
        - Each sub-score is coerced (missing / malformed -> 0) and clamped to
          [0, 100] before weighting, so the composite stays in [0, 100].
        - Label from the lead bands: hot [70, 100], warm [40, 70), cold [20, 40),
          unqualified [0, 20). The plain cold/warm/hot scale puts everything
          below 40 in cold; here its bottom half is labelled unqualified.

        2. Property scoring (`score_property`):
        - Views, leads, conversion rate, market heat, price competitiveness,
          listing freshness and view->lead engagement, each normalized to 0-100.
        - Label from the heat band set {cold, warm, hot, very_hot}.

        3. Helpers: `build_lead_inputs` derives the lead sub-scores from what a
           form submission and its property expose; `predict_conversion_probability`
           and `rank_properties` support the marketplace and dashboards.

        The engine holds only its weights, so the same inputs always produce
        the same composite and label.
    """

    def __init__(
        self,
        lead_weights: Optional[Mapping[str, float]] = None,
        property_weights: Optional[Mapping[str, float]] = None,
    ):
        settings = get_settings()
        self.lead_weights = validate_weights(dict(lead_weights or settings.lead_score_weights))
        self.property_weights = validate_weights(dict(property_weights or settings.property_score_weights))

    def score_lead(self, inputs: LeadScoreInputs) -> ScoreResult:
        breakdown = {
            "view": clamp(to_number(inputs.view_score)),
            "engagement": clamp(to_number(inputs.engagement_score)),
            "conversion": clamp(to_number(inputs.conversion_score)),
            "market": clamp(to_number(inputs.market_score)),
        }
        composite = _weighted(breakdown, self.lead_weights)
        return ScoreResult(composite=composite, label=lead_quality_label(composite), breakdown=breakdown)

    def score_property(self, inputs: PropertyScoreInputs) -> ScoreResult:
        # --- Volume: 100 views / 50 leads / 10% conversion saturate ---
        views = clamp(to_number(inputs.total_views) / 100 * 100)
        leads = clamp(to_number(inputs.total_leads) / 50 * 100)
        conversions = clamp(to_number(inputs.lead_to_conversion_rate) / 10 * 100)

        # --- Market conditions ---
        market = _heat_points(inputs.market_heat)

        # --- Price near the market median scores higher ---
        if inputs.price_percentile is None:
            price = 0.0
        else:
            distance = abs(clamp(to_number(inputs.price_percentile)) - 50)
            price = clamp(100 - distance * 2)

        # --- Newer listings score higher ---
        if inputs.days_on_market is None:
            freshness = 0.0
        else:
            days = to_number(inputs.days_on_market)
            if days <= 7:
                freshness = 100.0
            elif days <= 30:
                freshness = 60.0
            else:
                freshness = 20.0

        # --- View -> lead engagement, 20% saturates ---
        engagement = clamp(to_number(inputs.view_to_lead_rate) / 20 * 100)

        breakdown = {
            "views": views,
            "leads": leads,
            "conversions": conversions,
            "market": market,
            "price": price,
            "freshness": freshness,
            "engagement": engagement,
        }
        composite = _weighted(breakdown, self.property_weights)
        return ScoreResult(composite=composite, label=heat_label(composite), breakdown=breakdown)

    @staticmethod
    def build_lead_inputs(
        property_score: Any = None,
        engagement_seconds: Any = None,
        source_channel: Optional[str] = None,
        qualification: Optional[Mapping[str, Any]] = None,
        market_heat: Optional[str] = None,
    ) -> LeadScoreInputs:
        """
        Derive lead sub-scores from observable facts.

        - view: the linked property's lead score (0 when the lead has no property)
        - engagement: time spent on the page (<30s, <2min, longer)
        - conversion: qualification answers plus how the lead found us
        - market: heat of the lead's market
        """
        seconds = to_number(engagement_seconds)
        if engagement_seconds is None:
            engagement = 0.0
        elif seconds < 30:
            engagement = 20.0
        elif seconds < 120:
            engagement = 60.0
        else:
            engagement = 100.0

        qualification = qualification or {}
        qualification_points = 0.0
        if qualification.get("budget"):
            qualification_points += 20
        if qualification.get("bedrooms"):
            qualification_points += 20
        timeline_months = qualification.get("timeline_months")
        if timeline_months is not None and 0 < to_number(timeline_months) <= 3:
            qualification_points += 35
        if qualification.get("preapproved"):
            qualification_points += 25
        channel_points = SOURCE_CHANNEL_POINTS.get(source_channel or "", 0.0)
        conversion = clamp(qualification_points * 0.7 + channel_points * 0.3)

        return LeadScoreInputs(
            view_score=clamp(to_number(property_score)),
            engagement_score=engagement,
            conversion_score=conversion,
            market_score=_heat_points(market_heat),
        )

    @staticmethod
    def predict_conversion_probability(
        lead_quality: str,
        property_score: Any,
        market_heat: Optional[str],
        historical_conversion_rate: Any = None,
    ) -> float:
        """Conversion probability (0-100%) adjusted by lead quality, property score and market heat."""
        probability = to_number(historical_conversion_rate) or 15.0

        quality_multipliers = {"hot": 3.0, "warm": 1.5, "cold": 0.7, "unqualified": 0.2}
        probability *= quality_multipliers.get(str(lead_quality), 1.0)

        probability *= 1 + (clamp(to_number(property_score)) - 50) / 100

        heat_multipliers = {"very_hot": 1.4, "hot": 1.2, "warm": 1.0, "cold": 0.8}
        probability *= heat_multipliers.get(str(market_heat), 1.0)

        return round(clamp(probability), 1)

    @staticmethod
    def rank_properties(scores: Iterable[Tuple[str, float]]) -> List[Dict[str, Any]]:
        """Rank (property_id, score) pairs: score desc, property id asc; with percentiles."""
        ordered = sorted(scores, key=lambda item: (-to_number(item[1]), str(item[0])))
        total = len(ordered)
        return [
            {
                "property_id": property_id,
                "score": to_number(score),
                "rank": index + 1,
                "percentile": round((total - index) / total * 100),
            }
            for index, (property_id, score) in enumerate(ordered)
        ]


def _heat_points(market_heat: Optional[str]) -> float:
    try:
        return MARKET_HEAT_POINTS[HeatLabel(market_heat)]
    except ValueError:
        return 0.0
