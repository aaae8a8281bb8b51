from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import traceback

from app.crud import alert as alert_crud
from app.db.session import get_db
from app.schemas.alert import AlertOut
from app.services.alert_monitoring import AlertMonitor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/alerts", tags=["Alerts"])


@router.get("", response_model=List[AlertOut], summary="List alerts")
async def list_alerts(
    limit: int = Query(20, ge=1, le=200),
    severity: Optional[Literal["info", "warning", "critical"]] = None,
    status: Optional[Literal["new", "acknowledged", "resolved"]] = None,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await alert_crud.list_alerts(db, limit=limit, severity=severity, status=status)
    except Exception as e:
        logger.error("Error in list_alerts: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/run-checks",
    response_model=List[AlertOut],
    summary="Run all monitoring checks",
    description="Checks lead volume, import failures, market heat changes, low conversion and trending "
                "properties. Returns the alerts raised by this run.",
)
async def run_checks(db: AsyncSession = Depends(get_db)):
    try:
        return await AlertMonitor().run_checks(db)
    except Exception as e:
        logger.error("Error in run_checks: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.put("/{alert_id}/acknowledge", response_model=AlertOut, summary="Acknowledge an alert")
async def acknowledge_alert(alert_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        return await AlertMonitor.acknowledge(db, alert_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in acknowledge_alert: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.put("/{alert_id}/resolve", response_model=AlertOut, summary="Resolve an alert")
async def resolve_alert(alert_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        return await AlertMonitor.resolve(db, alert_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in resolve_alert: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
