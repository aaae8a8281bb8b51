# app/crud/property_metrics.py
from datetime import datetime
from typing import List

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.property_metrics import PropertyMetrics

COUNTER_COLUMNS = {
    "view": "total_views",
    "lead": "total_leads",
    "conversion": "total_conversions",
}
LISTING_FIELDS = ("city", "state", "list_price", "days_on_market", "price_reduced", "listing_status", "price_percentile")


# ---------------- WRITE ----------------

# --- Atomic counter increment (creates the row on first event) ---
async def increment_counter(db: AsyncSession, property_id: str, event: str, listing: dict | None = None) -> PropertyMetrics:
    column_name = COUNTER_COLUMNS.get(event)
    if column_name is None:
        raise ValueError(f"Unknown property event: {event}")

    now = datetime.utcnow()
    listing = {k: v for k, v in (listing or {}).items() if k in LISTING_FIELDS and v is not None}

    values = {"property_id": property_id, column_name: 1, "created_at": now, "updated_at": now, **listing}
    if event == "lead":
        values["last_lead_at"] = now

    column = getattr(PropertyMetrics.__table__.c, column_name)
    on_conflict = {column_name: column + 1, "updated_at": now, **listing}
    if event == "lead":
        on_conflict["last_lead_at"] = now

    stmt = (
        insert(PropertyMetrics)
        .values(**values)
        .on_conflict_do_update(index_elements=[PropertyMetrics.property_id], set_=on_conflict)
        .returning(PropertyMetrics)
    )
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one()


# ---------------- READ ----------------

async def get_by_property_id(db: AsyncSession, property_id: str) -> PropertyMetrics | None:
    result = await db.execute(select(PropertyMetrics).where(PropertyMetrics.property_id == property_id))
    return result.scalar_one_or_none()


async def list_by_market(db: AsyncSession, city: str, state: str) -> List[PropertyMetrics]:
    result = await db.execute(
        select(PropertyMetrics).where(PropertyMetrics.city == city, PropertyMetrics.state == state)
    )
    return list(result.scalars().all())


# --- All rows with a market, ordered for grouping by (city, state) ---
async def list_with_market(db: AsyncSession) -> List[PropertyMetrics]:
    result = await db.execute(
        select(PropertyMetrics)
        .where(PropertyMetrics.city.isnot(None), PropertyMetrics.state.isnot(None))
        .order_by(PropertyMetrics.city, PropertyMetrics.state, PropertyMetrics.property_id)
    )
    return list(result.scalars().all())


async def list_top(db: AsyncSession, limit: int = 10) -> List[PropertyMetrics]:
    result = await db.execute(
        select(PropertyMetrics)
        .order_by(PropertyMetrics.lead_score.desc(), PropertyMetrics.property_id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_all(db: AsyncSession) -> List[PropertyMetrics]:
    result = await db.execute(select(PropertyMetrics))
    return list(result.scalars().all())


async def list_min_leads(db: AsyncSession, min_leads: int) -> List[PropertyMetrics]:
    result = await db.execute(select(PropertyMetrics).where(PropertyMetrics.total_leads >= min_leads))
    return list(result.scalars().all())


async def list_high_volume(db: AsyncSession, leads_per_day: float) -> List[PropertyMetrics]:
    result = await db.execute(select(PropertyMetrics).where(PropertyMetrics.avg_leads_per_day >= leads_per_day))
    return list(result.scalars().all())
