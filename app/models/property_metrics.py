# models/property_metrics.py
from sqlalchemy import Column, String, Integer, Float, Numeric, Boolean, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from uuid import uuid4
from datetime import datetime
from app.db.base_class import Base

class PropertyMetrics(Base):
    __tablename__ = "property_metrics"

    metric_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    property_id = Column(String(64), nullable=False, unique=True)

    # Listing facts, written by the listing sync
    city = Column(String(100), nullable=True)
    state = Column(String(2), nullable=True)
    list_price = Column(Numeric(12, 2), nullable=True)
    days_on_market = Column(Integer, nullable=True)
    price_reduced = Column(Boolean, nullable=False, default=False)
    listing_status = Column(String(20), nullable=False, default="active")  # active, pending, sold
    price_percentile = Column(Float, nullable=True)  # 0-100 within market, 50 = median

    # Engagement totals
    total_views = Column(Integer, nullable=False, default=0)
    total_leads = Column(Integer, nullable=False, default=0)
    total_conversions = Column(Integer, nullable=False, default=0)

    # Rates (percent)
    view_to_lead_rate = Column(Float, nullable=False, default=0)
    lead_to_conversion_rate = Column(Float, nullable=False, default=0)

    # Scoring
    lead_score = Column(Float, nullable=False, default=0)
    score_factors = Column(JSONB, nullable=True)
    market_rank = Column(Integer, nullable=True)
    market_percentile = Column(Integer, nullable=True)

    # Rolling averages
    avg_leads_per_day = Column(Float, nullable=False, default=0)
    avg_leads_per_week = Column(Float, nullable=False, default=0)

    last_lead_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_property_metrics_score", "lead_score"),
        Index("idx_property_metrics_market", "city", "state"),
        Index("idx_property_metrics_rank", "market_rank"),
    )
