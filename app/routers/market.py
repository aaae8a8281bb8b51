from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import traceback

from app.crud import market_metrics as market_crud
from app.db.session import get_db
from app.schemas.market import MarketMetricsOut, MarketRecomputeRequest
from app.services.market_heat import MarketHeatService
from app.services.property_metrics import PropertyMetricsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/markets", tags=["Markets"])


@router.post(
    "/recompute",
    response_model=List[MarketMetricsOut],
    summary="Recompute market heat for a period",
    description="Aggregates property metrics per (city, state), ranks the markets and stores a new active "
                "snapshot per market, superseding the previous one. Property ranks are refreshed per market.",
)
async def recompute_markets(
    request: MarketRecomputeRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        snapshots = await MarketHeatService.recompute(db, request.period_start, request.period_end)
        for snapshot in snapshots:
            await PropertyMetricsService.rerank_market(db, snapshot.city, snapshot.state)
        await db.commit()
        return [MarketMetricsOut.model_validate(s.to_row()) for s in snapshots]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in recompute_markets: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get(
    "/hot",
    response_model=List[MarketMetricsOut],
    summary="Get the hottest markets",
)
async def get_hot_markets(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await market_crud.list_active(db, limit)
    except Exception as e:
        logger.error("Error in get_hot_markets: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
