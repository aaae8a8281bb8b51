# models/import_attempt.py
from sqlalchemy import Column, String, Integer, Float, Text, DateTime, CheckConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from datetime import datetime
from app.db.base_class import Base

class ImportAttempt(Base):
    __tablename__ = "import_attempts"

    attempt_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    import_type = Column(String(20), nullable=False)  # zillow, mls, realtor, manual, crm
    target = Column(String(200), nullable=False)  # location or pipeline

    properties_requested = Column(Integer, nullable=False, default=0)
    properties_imported = Column(Integer, nullable=False, default=0)
    properties_failed = Column(Integer, nullable=False, default=0)
    success_rate = Column(Float, nullable=False, default=0)

    status = Column(String(20), nullable=False, default="started")
    error_message = Column(Text, nullable=True)

    crm_imported = Column(Integer, nullable=False, default=0)
    crm_failed = Column(Integer, nullable=False, default=0)
    crm_status = Column(String(20), nullable=False, default="pending")

    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)  # set once, at finalization
    duration_seconds = Column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('started','completed','failed','partial')", name="chk_import_status"),
        CheckConstraint("crm_status IN ('pending','synced','failed')", name="chk_import_crm_status"),
        Index("idx_import_target", "target"),
        Index("idx_import_started", "started_at"),
    )
