from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import traceback

from app.crud import property_metrics as property_crud
from app.db.session import get_db
from app.schemas.property import PropertyEventRequest, PropertyMetricsOut
from app.services.property_metrics import PropertyMetricsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/properties", tags=["Properties"])


@router.post(
    "/{property_id}/events",
    response_model=PropertyMetricsOut,
    summary="Record a property view, lead or conversion",
    description="Increments the property's counters atomically and refreshes its rates and lead score.",
)
async def record_property_event(
    request: PropertyEventRequest,
    property_id: str = Path(..., max_length=64),
    db: AsyncSession = Depends(get_db),
):
    try:
        metrics = await PropertyMetricsService.record_event(db, property_id, request.event, request.listing())
        await db.commit()
        return metrics
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in record_property_event: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get(
    "/{property_id}/metrics",
    response_model=PropertyMetricsOut,
    summary="Get property metrics",
)
async def get_property_metrics(
    property_id: str = Path(..., max_length=64),
    db: AsyncSession = Depends(get_db),
):
    try:
        metrics = await property_crud.get_by_property_id(db, property_id)
        if metrics is None:
            raise LookupError(f"No metrics for property {property_id}")
        return metrics
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in get_property_metrics: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
