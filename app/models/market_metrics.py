# models/market_metrics.py
from sqlalchemy import Column, String, Integer, Float, Numeric, Boolean, DateTime, Index, text
from sqlalchemy.dialects.postgresql import UUID, JSONB
from uuid import uuid4
from datetime import datetime
from app.db.base_class import Base

class MarketMetrics(Base):
    __tablename__ = "market_metrics"

    market_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    city = Column(String(100), nullable=False)
    state = Column(String(2), nullable=False)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)

    # Inventory
    total_properties = Column(Integer, nullable=False, default=0)
    active_listings = Column(Integer, nullable=False, default=0)
    sold_listings = Column(Integer, nullable=False, default=0)

    # Price
    avg_price = Column(Numeric(12, 2), nullable=True)
    median_price = Column(Numeric(12, 2), nullable=True)

    # Heat
    market_heat = Column(String(20), nullable=False, default="cold")
    heat_score = Column(Float, nullable=False, default=0)
    heat_factors = Column(JSONB, nullable=True)
    market_rank = Column(Integer, nullable=True)

    # Demand
    avg_days_on_market = Column(Float, nullable=True)
    price_reduction_rate = Column(Float, nullable=False, default=0)

    # Leads
    total_leads = Column(Integer, nullable=False, default=0)
    leads_per_property = Column(Float, nullable=False, default=0)
    conversion_rate = Column(Float, nullable=False, default=0)

    # Trends vs previous period, null when there is no baseline
    price_change = Column(Float, nullable=True)
    leads_trend = Column(Float, nullable=True)
    has_baseline = Column(Boolean, nullable=False, default=False)

    is_active = Column(Boolean, nullable=False, default=True)
    superseded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index(
            "uq_market_active_period", "city", "state", "period_start",
            unique=True, postgresql_where=text("is_active"),
        ),
        Index("idx_market_heat", "market_heat"),
        Index("idx_market_period", "period_start"),
    )
