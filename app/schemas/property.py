from datetime import datetime
from decimal import Decimal
from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field


class PropertyEventRequest(BaseModel):
    event: Literal["view", "lead", "conversion"]

    # Listing facts, merged into the metrics row when present
    city: Optional[str] = None
    state: Optional[str] = Field(default=None, min_length=2, max_length=2)
    list_price: Optional[Decimal] = Field(default=None, ge=0)
    days_on_market: Optional[int] = Field(default=None, ge=0)
    price_reduced: Optional[bool] = None
    listing_status: Optional[Literal["active", "pending", "sold"]] = None
    price_percentile: Optional[float] = Field(default=None, ge=0, le=100)

    def listing(self) -> dict:
        return self.model_dump(exclude={"event"}, exclude_none=True)


class PropertyMetricsOut(BaseModel):
    property_id: str
    city: Optional[str]
    state: Optional[str]
    total_views: int
    total_leads: int
    total_conversions: int
    view_to_lead_rate: float
    lead_to_conversion_rate: float
    lead_score: float
    score_factors: Optional[Dict[str, float]]
    market_rank: Optional[int]
    market_percentile: Optional[int]
    avg_leads_per_day: float
    avg_leads_per_week: float
    last_lead_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = {"from_attributes": True}
