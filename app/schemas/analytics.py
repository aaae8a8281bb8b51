import datetime
from typing import Optional

from pydantic import BaseModel


class DailySnapshotRequest(BaseModel):
    day: Optional[datetime.date] = None  # defaults to today (UTC)


class DailySnapshotOut(BaseModel):
    date: datetime.date
    total_leads: int
    total_views: int
    total_conversions: int
    imports_completed: int
    imports_failed: int
    properties_imported: int
    avg_lead_score: float
    conversion_rate: float
    top_property: Optional[str]
    top_city: Optional[str]

    model_config = {"from_attributes": True}


class QualityBucket(BaseModel):
    quality: str
    count: int
    avg_score: float


class FunnelStage(BaseModel):
    status: str
    count: int
    percentage: float
