# app/crud/market_metrics.py
from datetime import datetime
from typing import List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.market_metrics import MarketMetrics


# --- Save a new period row, superseding the market's active row ---
async def save_snapshot(db: AsyncSession, values: dict) -> MarketMetrics:
    now = datetime.utcnow()
    await db.execute(
        update(MarketMetrics)
        .where(
            MarketMetrics.city == values["city"],
            MarketMetrics.state == values["state"],
            MarketMetrics.is_active.is_(True),
        )
        .values(is_active=False, superseded_at=now)
    )
    row = MarketMetrics(**values, is_active=True, created_at=now, updated_at=now)
    db.add(row)
    await db.flush()
    return row


# --- Latest row for an earlier period (trend baseline) ---
async def get_previous_period(db: AsyncSession, city: str, state: str, before: datetime) -> MarketMetrics | None:
    result = await db.execute(
        select(MarketMetrics)
        .where(
            MarketMetrics.city == city,
            MarketMetrics.state == state,
            MarketMetrics.period_start < before,
        )
        .order_by(MarketMetrics.period_start.desc(), MarketMetrics.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_active(db: AsyncSession, city: str, state: str) -> MarketMetrics | None:
    result = await db.execute(
        select(MarketMetrics).where(
            MarketMetrics.city == city,
            MarketMetrics.state == state,
            MarketMetrics.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def list_active(db: AsyncSession, limit: int | None = None) -> List[MarketMetrics]:
    stmt = (
        select(MarketMetrics)
        .where(MarketMetrics.is_active.is_(True))
        .order_by(MarketMetrics.market_rank.asc().nulls_last(), MarketMetrics.city.asc())
    )
    if limit:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_updated_since(db: AsyncSession, since: datetime) -> List[MarketMetrics]:
    result = await db.execute(
        select(MarketMetrics)
        .where(MarketMetrics.is_active.is_(True), MarketMetrics.updated_at >= since)
        .order_by(MarketMetrics.heat_score.desc())
    )
    return list(result.scalars().all())
