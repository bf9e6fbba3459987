"""
Specialist working hours and advisory slot suggestions.

Working hours describe a specialist's default weekly schedule, one period per
weekday (0=Sunday ... 6=Saturday). They are never enforced when booking; the
calendar uses them to suggest free slots.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth.context import CallerContext
from auth.permissions import require_elevated
from core.constants import ROLE_PARENT, STATUS_CANCELED
from core.errors import ForbiddenError, NotFoundError, ValidationError
from models import Appointment, Profile, SpecialistWorkingHours
from utils.datetime_utils import day_bounds, ensure_utc, weekday_index

logger = logging.getLogger(__name__)

DEFAULT_SLOT_STEP_MINUTES = 30


@dataclass
class SuggestedSlot:
    start_time: datetime
    end_time: datetime


def _generate_candidate_slots(
    period_start: datetime,
    period_end: datetime,
    duration_minutes: int,
    step_minutes: int
) -> List[Tuple[datetime, datetime]]:
    """Slots of ``duration_minutes`` starting every ``step_minutes`` that fit inside the period."""
    slots: List[Tuple[datetime, datetime]] = []
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)
    current = period_start
    while current + duration <= period_end:
        slots.append((current, current + duration))
        current += step
    return slots


class WorkingHoursService:
    """Service class for specialist working hours."""

    @staticmethod
    def _get_specialist(db: Session, specialist_id: int) -> Profile:
        specialist = db.get(Profile, specialist_id)
        if specialist is None or specialist.role == ROLE_PARENT:
            raise NotFoundError("Specialist not found", specialist_id=specialist_id)
        return specialist

    @staticmethod
    def list_working_hours(db: Session, caller: CallerContext, specialist_id: int) -> List[SpecialistWorkingHours]:
        """List a specialist's weekly hours. Admins, managers and the specialist themself."""
        if not caller.is_elevated() and caller.user_id != specialist_id:
            logger.warning(f"Working hours of specialist {specialist_id} hidden from {caller}")
            raise ForbiddenError("You cannot view this specialist's working hours")
        WorkingHoursService._get_specialist(db, specialist_id)
        return list(db.execute(
            select(SpecialistWorkingHours)
            .where(SpecialistWorkingHours.specialist_id == specialist_id)
            .order_by(SpecialistWorkingHours.weekday)
        ).scalars().all())

    @staticmethod
    def set_working_hours(
        db: Session,
        caller: CallerContext,
        specialist_id: int,
        weekday: int,
        start_time: time,
        end_time: time
    ) -> SpecialistWorkingHours:
        """
        Create or replace the working period for one weekday.

        Raises:
            ForbiddenError: If the caller is not an admin or manager
            ValidationError: If the weekday or the time range is invalid
            NotFoundError: If the specialist does not exist
        """
        require_elevated(caller, "edit working hours")
        if not 0 <= weekday <= 6:
            raise ValidationError("Weekday must be between 0 (Sunday) and 6 (Saturday)", weekday=weekday)
        if end_time <= start_time:
            raise ValidationError("Working hours must end after they start", weekday=weekday)
        WorkingHoursService._get_specialist(db, specialist_id)

        row = db.execute(
            select(SpecialistWorkingHours).where(
                SpecialistWorkingHours.specialist_id == specialist_id,
                SpecialistWorkingHours.weekday == weekday
            )
        ).scalar_one_or_none()
        if row is None:
            row = SpecialistWorkingHours(specialist_id=specialist_id, weekday=weekday)
            db.add(row)
        row.start_time = start_time
        row.end_time = end_time

        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to save working hours for specialist {specialist_id}: {e}")
            raise

        logger.info(f"Working hours for specialist {specialist_id}, weekday {weekday}: {start_time}-{end_time}")
        return row

    @staticmethod
    def delete_working_hours(db: Session, caller: CallerContext, specialist_id: int, weekday: int) -> None:
        """Remove the working period for one weekday (the specialist is off that day)."""
        require_elevated(caller, "edit working hours")
        row = db.execute(
            select(SpecialistWorkingHours).where(
                SpecialistWorkingHours.specialist_id == specialist_id,
                SpecialistWorkingHours.weekday == weekday
            )
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError("No working hours for this weekday", specialist_id=specialist_id, weekday=weekday)

        try:
            db.delete(row)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to delete working hours for specialist {specialist_id}: {e}")
            raise

        logger.info(f"Deleted working hours for specialist {specialist_id}, weekday {weekday}")

    @staticmethod
    def suggest_slots(
        db: Session,
        specialist_id: int,
        day: date,
        duration_minutes: int,
        step_minutes: Optional[int] = None
    ) -> List[SuggestedSlot]:
        """
        Suggest free slots for a specialist on a given day.

        Candidates are generated inside that weekday's working hours, read as
        UTC times, and any candidate overlapping a non-canceled booking is
        dropped. The result is a hint for the calendar; booking outside it is
        still allowed.
        """
        if duration_minutes <= 0:
            raise ValidationError("Duration must be greater than zero")
        step_minutes = step_minutes or DEFAULT_SLOT_STEP_MINUTES
        if step_minutes <= 0:
            raise ValidationError("Step must be greater than zero")
        WorkingHoursService._get_specialist(db, specialist_id)

        hours = db.execute(
            select(SpecialistWorkingHours).where(
                SpecialistWorkingHours.specialist_id == specialist_id,
                SpecialistWorkingHours.weekday == weekday_index(day)
            )
        ).scalar_one_or_none()
        if hours is None:
            return []

        day_start, day_end = day_bounds(day, day)
        booked = db.execute(
            select(Appointment.start_time, Appointment.end_time).where(
                Appointment.specialist_id == specialist_id,
                Appointment.status != STATUS_CANCELED,
                Appointment.start_time < day_end,
                Appointment.end_time > day_start
            )
        ).all()

        candidates = _generate_candidate_slots(
            datetime.combine(day, hours.start_time, tzinfo=timezone.utc),
            datetime.combine(day, hours.end_time, tzinfo=timezone.utc),
            duration_minutes,
            step_minutes
        )
        return [
            SuggestedSlot(start_time=slot_start, end_time=slot_end)
            for slot_start, slot_end in candidates
            if not any(
                ensure_utc(booked_start) < slot_end and slot_start < ensure_utc(booked_end)
                for booked_start, booked_end in booked
            )
        ]
