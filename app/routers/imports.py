from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import traceback

from app.crud import import_attempt as import_crud
from app.db.session import get_db
from app.schemas.imports import ImportAttemptOut, ImportFinalizeRequest, ImportStartRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/imports", tags=["Imports"])


@router.post("", response_model=ImportAttemptOut, status_code=201, summary="Start an import attempt")
async def start_import(request: ImportStartRequest, db: AsyncSession = Depends(get_db)):
    try:
        attempt = await import_crud.start_attempt(db, request.import_type, request.target, request.requested)
        await db.commit()
        return attempt
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in start_import: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.put(
    "/{attempt_id}/finalize",
    response_model=ImportAttemptOut,
    summary="Finalize an import attempt",
    description="Records the counts, success rate and CRM sync status. An attempt can be finalized once.",
)
async def finalize_import(attempt_id: UUID, request: ImportFinalizeRequest, db: AsyncSession = Depends(get_db)):
    try:
        attempt = await import_crud.finalize_attempt(
            db,
            attempt_id,
            imported=request.imported,
            failed=request.failed,
            crm_imported=request.crm_imported,
            crm_failed=request.crm_failed,
            error_message=request.error_message,
        )
        await db.commit()
        return attempt
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in finalize_import: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
