# pyright: reportMissingTypeStubs=false
"""
Specialist schedule API endpoints: weekly working hours and slot suggestions.
"""

import logging
from datetime import date, datetime, time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from api.responses import SuccessResponse, WorkingHoursResponse
from auth.context import CallerContext
from auth.dependencies import get_caller
from core.database import get_db
from services import WorkingHoursService

logger = logging.getLogger(__name__)

router = APIRouter()


class WorkingHoursRequest(BaseModel):
    start_time: time
    end_time: time


class SlotResponse(BaseModel):
    start_time: datetime
    end_time: datetime


@router.get("/{specialist_id}/working-hours", summary="List a specialist's working hours")
async def list_working_hours(
    specialist_id: int,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> List[WorkingHoursResponse]:
    try:
        rows = WorkingHoursService.list_working_hours(db, caller, specialist_id)
        return [WorkingHoursResponse.from_model(r) for r in rows]
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to list working hours for specialist {specialist_id}: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list working hours"
        )


@router.put("/{specialist_id}/working-hours/{weekday}", summary="Set working hours for a weekday")
async def set_working_hours(
    specialist_id: int,
    weekday: int,
    request: WorkingHoursRequest,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> WorkingHoursResponse:
    """Create or replace the working period for a weekday (0=Sunday ... 6=Saturday)."""
    try:
        row = WorkingHoursService.set_working_hours(
            db, caller, specialist_id, weekday, request.start_time, request.end_time
        )
        return WorkingHoursResponse.from_model(row)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to set working hours for specialist {specialist_id}: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save working hours"
        )


@router.delete("/{specialist_id}/working-hours/{weekday}", summary="Remove working hours for a weekday")
async def delete_working_hours(
    specialist_id: int,
    weekday: int,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> SuccessResponse:
    try:
        WorkingHoursService.delete_working_hours(db, caller, specialist_id, weekday)
        return SuccessResponse(message="Working hours removed")
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to delete working hours for specialist {specialist_id}: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete working hours"
        )


@router.get("/{specialist_id}/slots", summary="Suggest free slots for a day")
async def suggest_slots(
    specialist_id: int,
    day: date = Query(...),
    duration_minutes: int = Query(..., gt=0),
    step_minutes: Optional[int] = Query(None, gt=0),
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> List[SlotResponse]:
    """Free slots inside working hours. Advisory only; booking elsewhere is allowed."""
    try:
        slots = WorkingHoursService.suggest_slots(db, specialist_id, day, duration_minutes, step_minutes)
        return [SlotResponse(start_time=s.start_time, end_time=s.end_time) for s in slots]
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to suggest slots for specialist {specialist_id}: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to suggest slots"
        )
