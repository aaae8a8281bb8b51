from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel


class AlertOut(BaseModel):
    alert_id: UUID
    alert_type: str
    severity: str
    title: str
    message: str
    details: Optional[Dict[str, Any]]
    property_id: Optional[str]
    city: Optional[str]
    status: str
    acknowledged_at: Optional[datetime]
    resolved_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}
