import io
from datetime import datetime
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import traceback

from app.db.redis_client import get_redis
from app.db.session import get_db
from app.schemas.analytics import DailySnapshotOut, DailySnapshotRequest, FunnelStage, QualityBucket
from app.schemas.property import PropertyMetricsOut
from app.services.analytics_rollup import AnalyticsServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/analytics", tags=["Analytics"])

Days = Query(30, ge=1, le=365, description="Trailing window in days")


@router.get("/summary", summary="Dashboard summary for the trailing window")
async def get_summary(days: int = Days, db: AsyncSession = Depends(get_db), redis=Depends(get_redis)) -> Dict[str, Any]:
    try:
        return await AnalyticsServices.get_summary(days, db, redis)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in get_summary: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/top-properties", response_model=List[PropertyMetricsOut], summary="Top properties by lead score")
async def get_top_properties(limit: int = Query(10, ge=1, le=100), db: AsyncSession = Depends(get_db)):
    try:
        return await AnalyticsServices.get_top_properties(limit, db)
    except Exception as e:
        logger.error("Error in get_top_properties: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/funnel", response_model=List[FunnelStage], summary="Lead conversion funnel")
async def get_funnel(days: int = Days, db: AsyncSession = Depends(get_db), redis=Depends(get_redis)):
    try:
        return await AnalyticsServices.get_funnel(days, db, redis)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in get_funnel: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/quality-distribution", response_model=List[QualityBucket], summary="Lead quality distribution")
async def get_quality_distribution(days: int = Days, db: AsyncSession = Depends(get_db), redis=Depends(get_redis)):
    try:
        return await AnalyticsServices.get_quality_distribution(days, db, redis)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in get_quality_distribution: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/reports/{kind}", summary="Download a CSV report (properties, imports or markets)")
async def download_report(kind: str, days: int = Days, db: AsyncSession = Depends(get_db)):
    try:
        result = await AnalyticsServices.generate_report(kind, days, db)
        return StreamingResponse(
            io.StringIO(result["content"]),
            media_type=result["content_type"],
            headers={"Content-Disposition": f"attachment; filename={result['filename']}"},
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in download_report: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/daily-snapshot", response_model=DailySnapshotOut, summary="Create or refresh a daily snapshot")
async def create_daily_snapshot(request: DailySnapshotRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await AnalyticsServices.create_daily_snapshot(request.day or datetime.utcnow().date(), db)
    except Exception as e:
        logger.error("Error in create_daily_snapshot: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
