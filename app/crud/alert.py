# app/crud/alert.py
from typing import List
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.alert import Alert


# --- Insert Alert ---
async def create_alert(db: AsyncSession, alert_data: dict) -> Alert:
    alert = Alert(alert_id=uuid4(), status="new", **alert_data)
    db.add(alert)
    await db.flush()
    return alert


# --- Open (non-resolved) alert for the same type and reference ---
async def get_open_alert(
    db: AsyncSession,
    alert_type: str,
    property_id: str | None = None,
    city: str | None = None,
) -> Alert | None:
    stmt = select(Alert).where(Alert.alert_type == alert_type, Alert.status != "resolved")
    stmt = stmt.where(Alert.property_id.is_(None) if property_id is None else Alert.property_id == property_id)
    stmt = stmt.where(Alert.city.is_(None) if city is None else Alert.city == city)
    result = await db.execute(stmt.limit(1))
    return result.scalar_one_or_none()


async def get_alert_by_id(db: AsyncSession, alert_id: UUID) -> Alert | None:
    result = await db.execute(select(Alert).where(Alert.alert_id == alert_id))
    return result.scalar_one_or_none()


async def list_alerts(
    db: AsyncSession,
    limit: int = 20,
    severity: str | None = None,
    status: str | None = None,
) -> List[Alert]:
    stmt = select(Alert)
    if severity:
        stmt = stmt.where(Alert.severity == severity)
    if status:
        stmt = stmt.where(Alert.status == status)
    result = await db.execute(stmt.order_by(Alert.created_at.desc()).limit(limit))
    return list(result.scalars().all())
