# pyright: reportMissingTypeStubs=false
"""
Appointment API endpoints.

Bookings, recurring series, patches (including status changes) and deletes.
Conflicts are returned as 409 with the conflicting interval so the calendar
can roll back an optimistic drag or resize.
"""

import logging
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from api.responses import AppointmentResponse, SuccessResponse
from auth.context import CallerContext
from auth.dependencies import get_caller
from core.constants import MAX_NOTES_LENGTH, STATUS_PENDING
from core.database import get_db
from core.sentinels import UNSET
from services import AppointmentService, RecurrenceService, build_reminder_text, transition_status

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request/Response Models =====

def _clean_notes(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    if len(v) > MAX_NOTES_LENGTH:
        raise ValueError(f'Notes are too long (max {MAX_NOTES_LENGTH} characters)')
    return v or None


class AppointmentCreateRequest(BaseModel):
    """Request model for booking one appointment."""
    child_id: int
    specialist_id: int
    service_id: int
    start_time: datetime
    end_time: Optional[datetime] = None  # None = service duration
    status: str = STATUS_PENDING
    notes: Optional[str] = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, v: Optional[str]) -> Optional[str]:
        return _clean_notes(v)


class RecurringSeriesCreateRequest(AppointmentCreateRequest):
    """Request model for booking a weekly series from a seed appointment."""
    weekdays: List[int] = Field(..., description="0=Sunday ... 6=Saturday")
    until_date: date
    max_occurrences: Optional[int] = Field(None, ge=1)


class RecurringSeriesCreateResponse(BaseModel):
    """Response model for a recurring series; partial success is still a success."""
    recurrence_group_id: UUID
    created: List[AppointmentResponse]
    failed: List[datetime]
    first_failure: Optional[datetime] = None
    not_attempted: List[datetime]
    is_partial: bool
    message: str


class AppointmentPatchRequest(BaseModel):
    """
    Request model for patching an appointment.

    Omitted fields are kept. ``notes: null`` clears the notes.
    """
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    child_id: Optional[int] = None
    specialist_id: Optional[int] = None
    service_id: Optional[int] = None
    status: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, v: Optional[str]) -> Optional[str]:
        return _clean_notes(v)


class StatusChangeRequest(BaseModel):
    """Request model for a status transition."""
    status: str


class ReminderResponse(BaseModel):
    appointment_id: int
    text: str


# ===== Endpoints =====

@router.get("", summary="List appointments in a time range")
async def list_appointments(
    start: datetime = Query(...),
    end: datetime = Query(...),
    child_id: Optional[int] = Query(None),
    specialist_id: Optional[int] = Query(None),
    include_canceled: bool = Query(False),
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> List[AppointmentResponse]:
    """List appointments the caller can see, ordered by start time."""
    try:
        appointments = AppointmentService.list_appointments(
            db, caller, start, end,
            child_id=child_id,
            specialist_id=specialist_id,
            include_canceled=include_canceled
        )
        return [AppointmentResponse.from_model(a) for a in appointments]
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to list appointments: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list appointments"
        )


@router.get("/{appointment_id}", summary="Get an appointment")
async def get_appointment(
    appointment_id: int,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> AppointmentResponse:
    try:
        return AppointmentResponse.from_model(AppointmentService.get_appointment(db, caller, appointment_id))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to get appointment {appointment_id}: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get appointment"
        )


@router.get("/{appointment_id}/reminder", summary="Get reminder text for an appointment")
async def get_reminder_text(
    appointment_id: int,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> ReminderResponse:
    try:
        appointment = AppointmentService.get_appointment(db, caller, appointment_id)
        text = build_reminder_text(appointment.child.name, appointment.service.name, appointment.start_time)
        return ReminderResponse(appointment_id=appointment.id, text=text)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to build reminder for appointment {appointment_id}: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build reminder text"
        )


@router.post("", summary="Book an appointment", status_code=http_status.HTTP_201_CREATED)
async def create_appointment(
    request: AppointmentCreateRequest,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> AppointmentResponse:
    """Book one appointment. Returns 409 if the child or specialist is already booked."""
    try:
        appointment = AppointmentService.create_appointment(
            db,
            caller,
            child_id=request.child_id,
            specialist_id=request.specialist_id,
            service_id=request.service_id,
            start_time=request.start_time,
            end_time=request.end_time,
            status=request.status,
            notes=request.notes
        )
        return AppointmentResponse.from_model(appointment)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to create appointment: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create appointment"
        )


@router.post("/recurring", summary="Book a weekly recurring series", status_code=http_status.HTTP_201_CREATED)
async def create_recurring_series(
    request: RecurringSeriesCreateRequest,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> RecurringSeriesCreateResponse:
    """
    Book every occurrence independently.

    Conflicting occurrences are listed in ``failed``; the rest are booked.
    """
    try:
        result = RecurrenceService.create_recurring_series(
            db,
            caller,
            child_id=request.child_id,
            specialist_id=request.specialist_id,
            service_id=request.service_id,
            start_time=request.start_time,
            weekdays=request.weekdays,
            until_date=request.until_date,
            end_time=request.end_time,
            status=request.status,
            notes=request.notes,
            max_occurrences=request.max_occurrences
        )
        return RecurringSeriesCreateResponse(
            recurrence_group_id=result.recurrence_group_id,
            created=[AppointmentResponse.from_model(a) for a in result.created],
            failed=result.failed,
            first_failure=result.first_failure,
            not_attempted=result.not_attempted,
            is_partial=result.is_partial,
            message=result.message
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to create recurring series: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create recurring series"
        )


@router.patch("/{appointment_id}", summary="Update an appointment")
async def update_appointment(
    appointment_id: int,
    request: AppointmentPatchRequest,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> AppointmentResponse:
    """Move, reassign or annotate an appointment; a status in the patch goes through the lifecycle."""
    try:
        appointment = AppointmentService.update_appointment(
            db,
            caller,
            appointment_id,
            start_time=request.start_time,
            end_time=request.end_time,
            child_id=request.child_id,
            specialist_id=request.specialist_id,
            service_id=request.service_id,
            status=request.status,
            notes=request.notes if "notes" in request.model_fields_set else UNSET
        )
        return AppointmentResponse.from_model(appointment)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to update appointment {appointment_id}: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update appointment"
        )


@router.post("/{appointment_id}/status", summary="Change appointment status")
async def change_status(
    appointment_id: int,
    request: StatusChangeRequest,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> AppointmentResponse:
    try:
        return AppointmentResponse.from_model(transition_status(db, caller, appointment_id, request.status))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to change status of appointment {appointment_id}: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to change appointment status"
        )


@router.delete("/{appointment_id}", summary="Delete an appointment")
async def delete_appointment(
    appointment_id: int,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> SuccessResponse:
    try:
        AppointmentService.delete_appointment(db, caller, appointment_id)
        return SuccessResponse(message="Appointment deleted")
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to delete appointment {appointment_id}: {e}")
        raise HTTPException(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete appointment"
        )
