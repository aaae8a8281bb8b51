# app/crud/lead.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from uuid import UUID, uuid4
from datetime import datetime
from decimal import Decimal
from typing import List

from app.models.lead import Lead
from app.models.lead_status_history import LeadStatusHistory


# --- Insert Lead ---
async def create_lead(db: AsyncSession, lead_data: dict) -> Lead:
    lead_data = dict(lead_data)
    new_lead = Lead(
        lead_id=lead_data.pop("lead_id", None) or uuid4(),
        **lead_data,
        status="new",
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow(),
    )
    db.add(new_lead)
    await db.flush()
    return new_lead


# --- Fetch Lead by ID ---
async def get_lead_by_id(db: AsyncSession, lead_id: UUID) -> Lead | None:
    result = await db.execute(select(Lead).where(Lead.lead_id == lead_id))
    return result.scalar_one_or_none()


# --- Update Lead Status + History ---
async def update_lead_status(
    db: AsyncSession,
    lead: Lead,
    new_status: str,
    changed_by: UUID | None = None,
    notes: str | None = None,
) -> Lead:
    history = LeadStatusHistory(
        lead_id=lead.lead_id,
        previous_status=lead.status,
        new_status=new_status,
        changed_at=datetime.utcnow(),
        changed_by=changed_by,
        notes=notes or "Updated via API",
    )
    db.add(history)

    lead.status = new_status
    lead.updated_at = datetime.utcnow()
    return lead


# --- Mark Purchased ---
async def mark_purchased(db: AsyncSession, lead: Lead, agent_id: UUID, price: Decimal) -> Lead:
    lead.is_purchased = True
    lead.purchased_by = agent_id
    lead.purchased_at = datetime.utcnow()
    lead.purchase_price = price
    lead.updated_at = datetime.utcnow()
    await db.flush()
    return lead


# --- Record relay outcome ---
async def set_relay_status(db: AsyncSession, lead: Lead, relay_status: str) -> Lead:
    lead.relay_status = relay_status
    lead.updated_at = datetime.utcnow()
    await db.flush()
    return lead


# ---------------- QUERIES ----------------

async def list_recent(db: AsyncSession, limit: int) -> List[Lead]:
    result = await db.execute(select(Lead).order_by(Lead.created_at.desc()).limit(limit))
    return list(result.scalars().all())


async def list_recent_status_changes(db: AsyncSession, limit: int) -> List[LeadStatusHistory]:
    result = await db.execute(
        select(LeadStatusHistory).order_by(LeadStatusHistory.changed_at.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def list_since(db: AsyncSession, since: datetime) -> List[Lead]:
    result = await db.execute(select(Lead).where(Lead.created_at >= since))
    return list(result.scalars().all())


async def count_since(db: AsyncSession, since: datetime) -> int:
    result = await db.execute(select(func.count(Lead.lead_id)).where(Lead.created_at >= since))
    return result.scalar_one()


async def list_status_changes_since(db: AsyncSession, since: datetime) -> List[LeadStatusHistory]:
    result = await db.execute(select(LeadStatusHistory).where(LeadStatusHistory.changed_at >= since))
    return list(result.scalars().all())
