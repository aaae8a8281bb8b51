from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.routing import RoutingResult
from app.schemas.submission import LeadCategory

LeadStatus = Literal["new", "contacted", "qualified", "converted", "lost"]


# --- Capture ---
class LeadCaptureResponse(BaseModel):
    category: LeadCategory
    quality_score: float
    quality_label: str
    score_breakdown: Dict[str, float]
    needs_review: bool = False
    replayed: bool = False
    routing: RoutingResult


# --- Status update ---
class LeadStatusUpdateRequest(BaseModel):
    status: LeadStatus
    changed_by: Optional[UUID] = None
    notes: Optional[str] = None


class LeadStatusUpdateResponse(BaseModel):
    lead_id: UUID
    previous_status: str
    status: str
    updated_at: datetime


# --- Marketplace purchase ---
class LeadPurchaseRequest(BaseModel):
    agent_id: UUID
    price: Decimal = Field(ge=0)


class LeadOut(BaseModel):
    lead_id: UUID
    category: str
    first_name: str
    last_name: str
    email: Optional[str]
    phone: Optional[str]
    city: Optional[str]
    source: str
    property_id: Optional[str]
    status: str
    quality_label: str
    quality_score: float
    needs_review: bool
    delivery_status: str
    fallback_reason: Optional[str]
    relay_status: Optional[str]
    crm_contact_id: Optional[str]
    is_purchased: bool
    purchased_by: Optional[UUID]
    purchased_at: Optional[datetime]
    purchase_price: Optional[Decimal]
    created_at: datetime

    model_config = {"from_attributes": True}


# --- Recent activity ---
class RecentCapture(BaseModel):
    lead_id: UUID
    category: str
    status: str
    quality_label: str
    delivery_status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class RecentStatusChange(BaseModel):
    lead_id: UUID
    previous_status: Optional[str]
    new_status: str
    changed_at: datetime
    changed_by: Optional[UUID]

    model_config = {"from_attributes": True}


class RecentLeadsResponse(BaseModel):
    recent_captures: List[RecentCapture]
    recent_updates: List[RecentStatusChange]
