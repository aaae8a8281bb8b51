from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
import logging
import traceback


from app.core.exceptions import LeadPersistenceError
from app.schemas.lead import (
    LeadCaptureResponse,
    LeadOut,
    LeadPurchaseRequest,
    LeadStatusUpdateRequest,
    LeadStatusUpdateResponse,
    RecentLeadsResponse,
)
from app.schemas.submission import LeadSubmission, MortgageLeadRequest
from app.db.session import get_db
from app.db.redis_client import get_redis
from app.services.lead_services import LeadServices
from app.services.pipeline_router import PipelineRouter, get_pipeline_router

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/leads", tags=["Leads"])


@router.post(
    "/submit",
    response_model=LeadCaptureResponse,
    status_code=201,
    summary="Submit a lead form",
    description="Classifies the submission as AGENT, BUYER or MORTGAGE, scores it and routes it to the CRM. "
                "When the CRM is unavailable the lead is stored locally and relayed by webhook.",
)
async def submit_lead(
    request: LeadSubmission,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
    pipeline_router: PipelineRouter = Depends(get_pipeline_router),
):
    try:
        return await LeadServices.capture_lead(request, db, redis, pipeline_router)
    except LeadPersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in submit_lead: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/mortgage",
    response_model=LeadCaptureResponse,
    status_code=201,
    summary="Submit a mortgage calculator lead",
)
async def submit_mortgage_lead(
    request: MortgageLeadRequest,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
    pipeline_router: PipelineRouter = Depends(get_pipeline_router),
):
    try:
        return await LeadServices.capture_mortgage_lead(request, db, redis, pipeline_router)
    except LeadPersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in submit_mortgage_lead: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.put(
    "/{lead_id}/status",
    response_model=LeadStatusUpdateResponse,
    summary="Update lead status",
    description="Moves a lead along new → contacted → qualified → converted, or to lost, and records the change.",
)
async def update_lead_status(
    lead_id: UUID,
    request: LeadStatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await LeadServices.update_lead_status(lead_id, request.status, db, request.changed_by, request.notes)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in update_lead_status: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/{lead_id}/purchase",
    response_model=LeadOut,
    summary="Purchase a lead from the marketplace",
)
async def purchase_lead(
    lead_id: UUID,
    request: LeadPurchaseRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await LeadServices.purchase_lead(lead_id, request.agent_id, request.price, db)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in purchase_lead: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get(
    "/recent",
    response_model=RecentLeadsResponse,
    summary="Get recent lead captures and status changes",
)
async def get_recent_leads(
    limit: int = Query(10, ge=1, le=100, description="Number of recent records to fetch"),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await LeadServices.get_recent_leads(limit, db)
    except Exception as e:
        logger.error("Error in get_recent_leads: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
