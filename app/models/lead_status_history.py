# models/lead_status_history.py
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from uuid import uuid4
from datetime import datetime
from app.db.base_class import Base

class LeadStatusHistory(Base):
    __tablename__ = "lead_status_history"

    history_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    lead_id = Column(UUID(as_uuid=True), ForeignKey("leads.lead_id"), nullable=False)
    previous_status = Column(String(30), nullable=True)
    new_status = Column(String(30), nullable=False)
    changed_at = Column(DateTime, default=datetime.utcnow)
    changed_by = Column(UUID(as_uuid=True), nullable=True)  # agent or admin
    notes = Column(Text, nullable=True)

    # Relationships
    lead = relationship("Lead", back_populates="status_history")

    __table_args__ = (
        Index("idx_status_history_lead", "lead_id"),
        Index("idx_status_history_time", "changed_at"),
    )
