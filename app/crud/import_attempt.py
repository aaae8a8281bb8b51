# app/crud/import_attempt.py
from datetime import datetime
from typing import List
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ImportAlreadyFinalizedError
from app.models.import_attempt import ImportAttempt


def import_status(requested: int, imported: int) -> str:
    if requested > 0 and imported >= requested:
        return "completed"
    if imported <= 0:
        return "failed"
    return "partial"


def crm_sync_status(crm_imported: int, crm_failed: int) -> str:
    if crm_imported == 0 and crm_failed == 0:
        return "pending"
    return "failed" if crm_failed > 0 else "synced"


# ---------------- CREATE ----------------

async def start_attempt(db: AsyncSession, import_type: str, target: str, requested: int) -> ImportAttempt:
    if requested < 0:
        raise ValueError("requested must be >= 0")
    attempt = ImportAttempt(
        attempt_id=uuid4(),
        import_type=import_type,
        target=target,
        properties_requested=requested,
        status="started",
        crm_status="pending",
        started_at=datetime.utcnow(),
    )
    db.add(attempt)
    await db.flush()
    return attempt


# ---------------- READ ----------------

async def get_attempt(db: AsyncSession, attempt_id: UUID) -> ImportAttempt | None:
    result = await db.execute(select(ImportAttempt).where(ImportAttempt.attempt_id == attempt_id))
    return result.scalar_one_or_none()


async def list_since(db: AsyncSession, since: datetime) -> List[ImportAttempt]:
    result = await db.execute(
        select(ImportAttempt)
        .where(ImportAttempt.started_at >= since)
        .order_by(ImportAttempt.started_at.desc())
    )
    return list(result.scalars().all())


# ---------------- FINALIZE ----------------

async def finalize_attempt(
    db: AsyncSession,
    attempt_id: UUID,
    imported: int,
    failed: int,
    crm_imported: int = 0,
    crm_failed: int = 0,
    error_message: str | None = None,
) -> ImportAttempt:
    """
    Close an attempt. completed_at and duration are written here and nowhere
    else, so a second call is rejected rather than overwriting them.
    """
    attempt = await get_attempt(db, attempt_id)
    if attempt is None:
        raise LookupError(f"Import attempt {attempt_id} not found")
    if attempt.completed_at is not None:
        raise ImportAlreadyFinalizedError(f"Import attempt {attempt_id} is already finalized")
    if min(imported, failed, crm_imported, crm_failed) < 0:
        raise ValueError("counts must be >= 0")

    requested = attempt.properties_requested or 0
    now = datetime.utcnow()

    attempt.properties_imported = imported
    attempt.properties_failed = failed
    attempt.success_rate = imported / requested * 100 if requested else 0.0
    attempt.status = import_status(requested, imported)
    attempt.crm_imported = crm_imported
    attempt.crm_failed = crm_failed
    attempt.crm_status = crm_sync_status(crm_imported, crm_failed)
    attempt.error_message = error_message
    attempt.completed_at = now
    attempt.duration_seconds = int((now - attempt.started_at).total_seconds())
    await db.flush()
    return attempt
