from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from app.schemas.submission import LeadCategory


class FallbackReason(str, Enum):
    CRM_NOT_CONFIGURED = "crm_not_configured"
    CRM_UNREACHABLE = "crm_unreachable"
    CRM_REJECTED = "crm_rejected"
    PIPELINE_FAILED = "pipeline_failed"


class RelayOutcome(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"


class RoutingResult(BaseModel):
    success: bool
    contact_id: str
    lead_type: LeadCategory
    pipeline: str
    message: Optional[str] = None
    fallback: bool = False
    webhook_sent: bool = False
    fallback_reason: Optional[FallbackReason] = None
    relay_outcome: Optional[RelayOutcome] = None
    lead_id: Optional[UUID] = None
