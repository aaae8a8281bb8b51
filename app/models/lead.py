# models/lead.py
from sqlalchemy import Column, String, Integer, Float, Numeric, Boolean, DateTime, Text, CheckConstraint, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from uuid import uuid4
from datetime import datetime
from app.db.base_class import Base

class Lead(Base):
    __tablename__ = "leads"

    lead_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    category = Column(String(20), nullable=False)  # AGENT, BUYER, MORTGAGE
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    email = Column(String(320), nullable=True)
    phone = Column(String(20), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(2), nullable=True)
    zip_code = Column(String(10), nullable=True)
    source = Column(String(255), nullable=False, default="website")
    property_id = Column(String(64), nullable=True)
    details = Column(JSONB, nullable=True)  # category-specific form fields

    # Mortgage figures
    home_price = Column(Numeric(12, 2), nullable=True)
    down_payment = Column(Numeric(12, 2), nullable=True)
    interest_rate = Column(Numeric(5, 2), nullable=True)
    loan_term = Column(Integer, nullable=True)
    monthly_payment = Column(Numeric(10, 2), nullable=True)

    # Quality
    status = Column(String(30), nullable=False, default="new")
    quality_label = Column(String(20), nullable=False, default="cold")
    quality_score = Column(Float, nullable=False, default=0)
    score_breakdown = Column(JSONB, nullable=True)
    needs_review = Column(Boolean, nullable=False, default=False)

    # Delivery
    crm_contact_id = Column(String(255), nullable=True)
    crm_pipeline_id = Column(String(255), nullable=True)
    delivery_status = Column(String(20), nullable=False, default="delivered")
    fallback_reason = Column(String(50), nullable=True)
    relay_status = Column(String(20), nullable=True)

    # Marketplace purchase
    is_purchased = Column(Boolean, nullable=False, default=False)
    purchased_by = Column(UUID(as_uuid=True), nullable=True)  # agent id
    purchased_at = Column(DateTime, nullable=True)
    purchase_price = Column(Numeric(10, 2), nullable=True)

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("category IN ('AGENT','BUYER','MORTGAGE')", name="chk_lead_category"),
        CheckConstraint("status IN ('new','contacted','qualified','converted','lost')", name="chk_lead_status"),
        CheckConstraint("quality_label IN ('hot','warm','cold','unqualified')", name="chk_lead_quality"),
        CheckConstraint("quality_score BETWEEN 0 AND 100", name="chk_lead_score"),
        CheckConstraint("delivery_status IN ('delivered','fallback')", name="chk_lead_delivery"),
        Index("idx_leads_category", "category"),
        Index("idx_leads_status", "status"),
        Index("idx_leads_created", "created_at"),
        Index("idx_leads_property", "property_id"),
    )

    # Relationships
    status_history = relationship("LeadStatusHistory", back_populates="lead")
