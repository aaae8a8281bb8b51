from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ImportStartRequest(BaseModel):
    import_type: str = Field(min_length=1, max_length=20)  # zillow, mls, realtor, manual, crm
    target: str = Field(min_length=1, max_length=200)
    requested: int = Field(ge=0)


class ImportFinalizeRequest(BaseModel):
    imported: int = Field(ge=0)
    failed: int = Field(ge=0)
    crm_imported: int = Field(default=0, ge=0)
    crm_failed: int = Field(default=0, ge=0)
    error_message: Optional[str] = None


class ImportAttemptOut(BaseModel):
    attempt_id: UUID
    import_type: str
    target: str
    properties_requested: int
    properties_imported: int
    properties_failed: int
    success_rate: float
    status: str
    crm_imported: int
    crm_failed: int
    crm_status: str
    error_message: Optional[str]
    started_at: datetime
    completed_at: Optional[datetime]
    duration_seconds: Optional[int]

    model_config = {"from_attributes": True}
