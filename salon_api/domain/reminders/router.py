"""Reminder router - FastAPI endpoints for WhatsApp appointment reminders"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import TenantModels, get_tenant_models, is_valid_table_prefix
from .exceptions import ConfigMissing, SelectionError
from .repository import ReminderRepository
from .schemas import DispatchRunResponse, MessageLogEntry
from .service import ReminderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reminders", tags=["Reminders"])

NO_APPOINTMENTS_MESSAGE = "No appointments found for tomorrow"
PROCESSED_MESSAGE = "WhatsApp confirmations processed"


def get_tenant(
    table_prefix: str = Query("", description="Tenant table prefix, e.g. 'isabelle_'"),
) -> TenantModels:
    """Dependency resolving the tenant namespace from the query string"""
    if not is_valid_table_prefix(table_prefix):
        raise HTTPException(status_code=400, detail="Invalid table prefix")
    return get_tenant_models(table_prefix)


def get_reminder_service(
    models: TenantModels = Depends(get_tenant), db: Session = Depends(get_db)
) -> ReminderService:
    """Dependency injection for ReminderService"""
    return ReminderService(db, models)


@router.post("/daily-confirmations", response_model=DispatchRunResponse, response_model_exclude_none=True)
async def run_daily_confirmations(
    template: Optional[str] = Query(None, description="Template name; falls back to the default"),
    service: ReminderService = Depends(get_reminder_service),
):
    """Send WhatsApp reminders for tomorrow's pending appointments"""
    try:
        summary = await service.run(template_name=template)
    except (ConfigMissing, SelectionError) as e:
        logger.error(f"❌ Error in WhatsApp daily confirmations: {e}")
        body = DispatchRunResponse(success=False, error=str(e))
        return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))

    return DispatchRunResponse(
        success=True,
        message=PROCESSED_MESSAGE if summary.selected else NO_APPOINTMENTS_MESSAGE,
        **summary.as_dict(),
    )


@router.get("/messages", response_model=list[MessageLogEntry])
async def get_message_logs(
    limit: int = Query(100, ge=1, le=500),
    models: TenantModels = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    """Get the most recent reminder messages with client and appointment details"""
    try:
        rows = ReminderRepository.get_message_logs(db, models, limit=limit)
    except SQLAlchemyError as e:
        logger.error(f"❌ Error loading message logs: {e}")
        raise HTTPException(status_code=500, detail="Failed to load message logs") from e
    return [MessageLogEntry.from_row(record, client, appointment) for record, client, appointment in rows]
