# models/daily_snapshot.py
from sqlalchemy import Column, String, Integer, Float, Date
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.db.base_class import Base

class DailySnapshot(Base):
    __tablename__ = "daily_snapshots"

    snapshot_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    date = Column(Date, nullable=False, unique=True)

    total_leads = Column(Integer, nullable=False, default=0)
    total_views = Column(Integer, nullable=False, default=0)
    total_conversions = Column(Integer, nullable=False, default=0)

    imports_completed = Column(Integer, nullable=False, default=0)
    imports_failed = Column(Integer, nullable=False, default=0)
    properties_imported = Column(Integer, nullable=False, default=0)

    avg_lead_score = Column(Float, nullable=False, default=0)
    conversion_rate = Column(Float, nullable=False, default=0)

    top_property = Column(String(64), nullable=True)
    top_city = Column(String(100), nullable=True)
