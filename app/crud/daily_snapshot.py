# app/crud/daily_snapshot.py
from datetime import date
from typing import List

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.daily_snapshot import DailySnapshot


# --- Upsert by date ---
async def upsert_snapshot(db: AsyncSession, values: dict) -> DailySnapshot:
    updates = {k: v for k, v in values.items() if k != "date"}
    stmt = (
        insert(DailySnapshot)
        .values(**values)
        .on_conflict_do_update(index_elements=[DailySnapshot.date], set_=updates)
        .returning(DailySnapshot)
    )
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one()


async def list_since(db: AsyncSession, since: date) -> List[DailySnapshot]:
    result = await db.execute(
        select(DailySnapshot).where(DailySnapshot.date >= since).order_by(DailySnapshot.date.asc())
    )
    return list(result.scalars().all())
