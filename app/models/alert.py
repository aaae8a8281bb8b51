# models/alert.py
from sqlalchemy import Column, String, Text, DateTime, CheckConstraint, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from uuid import uuid4
from datetime import datetime
from app.db.base_class import Base

class Alert(Base):
    __tablename__ = "alerts"

    alert_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    alert_type = Column(String(40), nullable=False)
    severity = Column(String(20), nullable=False, default="info")
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    details = Column(JSONB, nullable=True)

    # References
    property_id = Column(String(64), nullable=True)
    city = Column(String(100), nullable=True)

    status = Column(String(20), nullable=False, default="new")
    acknowledged_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "alert_type IN ('high_lead_volume','import_failed','market_heat_change','property_trending','low_conversion_rate')",
            name="chk_alert_type"
        ),
        CheckConstraint("severity IN ('info','warning','critical')", name="chk_alert_severity"),
        CheckConstraint("status IN ('new','acknowledged','resolved')", name="chk_alert_status"),
        Index("idx_alert_type", "alert_type"),
        Index("idx_alert_status", "status"),
        Index("idx_alert_property", "property_id"),
    )
