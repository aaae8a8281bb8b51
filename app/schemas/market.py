from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, model_validator


class MarketRecomputeRequest(BaseModel):
    period_start: datetime
    period_end: datetime

    @model_validator(mode="after")
    def _check_period(self):
        if self.period_end <= self.period_start:
            raise ValueError("period_end must be after period_start")
        return self


class MarketMetricsOut(BaseModel):
    city: str
    state: str
    period_start: Optional[datetime]
    period_end: Optional[datetime]
    total_properties: int
    active_listings: int
    sold_listings: int
    avg_price: Optional[float]
    median_price: Optional[float]
    avg_days_on_market: Optional[float]
    price_reduction_rate: float
    total_leads: int
    leads_per_property: float
    conversion_rate: float
    market_heat: str
    heat_score: float
    heat_factors: Optional[Dict[str, float]]
    price_change: Optional[float]
    leads_trend: Optional[float]
    has_baseline: bool
    market_rank: Optional[int]

    model_config = {"from_attributes": True}
